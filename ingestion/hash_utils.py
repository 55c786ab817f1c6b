import hashlib

from ingestion.cleaners import normalize_text


def sha256_text(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def fingerprint(body: str, source_uri: str | None = None) -> str:
    """Hash of the normalized body; with ``source_uri`` set, provenance is hashed too."""
    normalized = normalize_text(body)
    if source_uri is None:
        return sha256_text(normalized)
    return sha256_text(f"{source_uri}\n{normalized}")
