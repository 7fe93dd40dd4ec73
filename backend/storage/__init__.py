"""File-based JSON document store.

Data layout:
  data/
    store/                         One file per document, one dir per collection
      sessions/
        <session_id>.json          SessionData (keeper_id, scene)
        <session_id>/
          characters/<id>.json     Character sheets
          chat/<id>.json           Chat messages (append-only, timestamped)
    config.json                    Service settings (watch timeout, query bound)

Paths follow the client protocol in obscura.store: an even number of
segments names a document, an odd number a collection. Every segment must
match [A-Za-z0-9_-]+; anything else raises ValueError before touching disk.

Patch merges dotted field paths ("scene.active_handout") into the stored
document without disturbing sibling fields. Appended documents get a fresh
hex id and a millisecond timestamp that never repeats or goes backwards.
"""

# Re-export all public symbols so `from backend import storage` keeps working.

from .core import (  # noqa: F401
    collection_dir,
    data_dir,
    document_file,
    init_storage,
    store_dir,
)

from .documents import (  # noqa: F401
    get_document,
    patch_document,
    put_document,
)

from .collection import (  # noqa: F401
    append_document,
    list_documents,
)

from .config import (  # noqa: F401
    get_config,
    update_config,
)
