import os
import tempfile

CERTIFICATES_URL_PREFIX = "/uploads/certificates"


def ensure_dir(path: str) -> None:
    """Create directory if missing (mkdir -p equivalent)."""
    os.makedirs(path, exist_ok=True)


def write_atomic(path: str, data, mode: str = "wb") -> None:
    """Write data to a temporary file then atomically rename to target path."""
    dir_path = os.path.dirname(path)
    ensure_dir(dir_path)
    fd, tmp_path = tempfile.mkstemp(dir=dir_path)
    try:
        with os.fdopen(fd, mode) as f:
            f.write(data)
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)


def certificates_dir(site_root: str) -> str:
    return os.path.join(site_root, "uploads", "certificates")


def certificate_public_path(certificate_id: str) -> str:
    return f"{CERTIFICATES_URL_PREFIX}/{certificate_id}.pdf"


def resolve_public_path(site_root: str, public_path: str | None) -> str | None:
    """Map a served path like ``/uploads/x.png`` to a file under site_root.

    Paths escaping site_root resolve to None.
    """
    raw = (public_path or "").strip()
    if not raw:
        return None
    root_real = os.path.realpath(site_root)
    resolved = os.path.realpath(os.path.join(root_real, raw.lstrip("/")))
    if resolved == root_real or resolved.startswith(f"{root_real}{os.sep}"):
        return resolved
    return None
