"""Storage initialization and path helpers."""

from pathlib import Path

from obscura.store import split_path

_data_dir: Path | None = None


def init_storage(data_dir: Path) -> None:
    global _data_dir
    from . import collection as _col_mod

    _data_dir = data_dir
    _data_dir.mkdir(parents=True, exist_ok=True)
    store_dir().mkdir(exist_ok=True)
    _col_mod.reset_clock()


def data_dir() -> Path:
    assert _data_dir is not None, "Call init_storage() before using storage"
    return _data_dir


def store_dir() -> Path:
    return data_dir() / "store"


def document_file(path: str) -> Path:
    """File backing a document path. Raises ValueError for collection paths.

    "sessions/ABC123" → store/sessions/ABC123.json
    """
    segments = split_path(path)
    if len(segments) % 2:
        raise ValueError(f"{path!r} is a collection path, not a document path")
    return store_dir().joinpath(*segments[:-1]) / f"{segments[-1]}.json"


def collection_dir(path: str) -> Path:
    """Directory backing a collection path. Raises ValueError for document paths.

    "sessions/ABC123/chat" → store/sessions/ABC123/chat/
    """
    segments = split_path(path)
    if not len(segments) % 2:
        raise ValueError(f"{path!r} is a document path, not a collection path")
    return store_dir().joinpath(*segments)
