"""
Service context: everything a handler may touch, built once at startup and
passed explicitly to every handler.
"""

from dataclasses import dataclass

from loguru import logger

from .catalog import SongCatalog
from .config import Settings
from .errors import StartupError, StorageError
from .keys import KeyStore
from .search import SearchIndex
from .storage import SongStore
from .views import Views


@dataclass
class ServiceContext:
    settings: Settings
    keys: KeyStore
    store: SongStore
    index: SearchIndex
    catalog: SongCatalog
    views: Views


def build_context(settings: Settings) -> ServiceContext:
    """Prepare the data root, load or create keys, and index the stored songs."""
    try:
        settings.data_root.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Cannot start server, data root {settings.data_root} isn't accessible: {e}")
        raise StartupError(f"Data root {settings.data_root} isn't accessible") from e

    keys = KeyStore.load(settings.data_root)

    store = SongStore(settings.songs_path)
    try:
        store.ensure_root()
    except StorageError as e:
        logger.error(f"Cannot start server: {e}")
        raise StartupError(str(e)) from e

    index = SearchIndex(limit=settings.search_limit)
    catalog = SongCatalog(store, index)
    catalog.reindex()

    return ServiceContext(
        settings=settings,
        keys=keys,
        store=store,
        index=index,
        catalog=catalog,
        views=Views(keys),
    )
