import os
import tempfile


def write_atomic(path: str, data: bytes, permissions: int = 0o644) -> str:
    """Write bytes next to ``path`` and rename into place; returns the absolute path."""
    target = os.path.abspath(path)
    dir_path = os.path.dirname(target)
    os.makedirs(dir_path, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=dir_path, suffix=".part")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.chmod(tmp_path, permissions)
        os.replace(tmp_path, target)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
    return target
