# src/lightrecord/schema.py
import logging
from typing import TYPE_CHECKING, Dict, List, Optional, Type

if TYPE_CHECKING:
    from .record import ActiveRecord

logger = logging.getLogger(__name__)


class SchemaCache:
    """Column lists of record classes, loaded once per class.

    Entries are never invalidated on their own; a schema change becomes
    visible only after :meth:`refresh`.
    """

    def __init__(self):
        self._columns: Dict[type, List[str]] = {}

    def is_loaded(self, model: Type["ActiveRecord"]) -> bool:
        return model in self._columns

    def columns(self, model: Type["ActiveRecord"]) -> List[str]:
        """Ordered column names for ``model``, loading them on first use."""
        if model not in self._columns:
            backend = model.backend()
            table = model.table_name()
            if not table:
                raise ValueError(f"{model.__name__} does not declare a table")
            columns = list(backend.list_columns(backend.database, table))
            logger.debug(f"Loaded {len(columns)} columns for {model.__name__} from table '{table}'")
            self._columns[model] = columns
        return list(self._columns[model])

    def refresh(self, model: Optional[Type["ActiveRecord"]] = None) -> None:
        """Forget cached columns of one record class, or of all of them."""
        if model is None:
            self._columns.clear()
        else:
            self._columns.pop(model, None)

    def __len__(self):
        return len(self._columns)

    def __contains__(self, model):
        return model in self._columns


schema_cache = SchemaCache()
