# order_service/database.py
"""
Simple file-backed DB layer using CSV files as storage.
Provides basic CRUD primitives per table name. Uses file locking (plus an
in-process re-entrant lock) so read-check-write sequences on a table are
exclusive across threads and processes.

Usage:
    from order_service.database import db
    db.get_record("orders", "id", "abc123")
    with db.transaction("orders"):
        row = db.get_record("orders", "id", "abc123")
        db.update_record("orders", "id", "abc123", {"status": "SHIPPED"}, expected={"status": "PROCESSING"})
"""

import logging
import os
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import pandas as pd
from filelock import FileLock

from order_service.config import settings
from order_service.core.errors import ConcurrentModificationError, InfrastructureError

logger = logging.getLogger(__name__)

# errors from the storage layer that callers see as InfrastructureError
_STORAGE_ERRORS = (OSError, pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError)


class FileBackedDB:
    """
    Manages CSV files inside data_dir.
    Table name corresponds to a file name in settings (or you may pass a full filename).
    """

    def __init__(self, data_dir: Optional[Path] = None, lock_timeout: Optional[float] = None):
        self.data_dir = Path(data_dir if data_dir is not None else settings.DATA_DIR)
        self.lock_timeout = float(lock_timeout if lock_timeout is not None else settings.LOCK_TIMEOUT_SECONDS)
        self._locks: Dict[str, Tuple[threading.RLock, FileLock]] = {}
        self._locks_guard = threading.Lock()

    def _file_path(self, table: str) -> Path:
        """
        Resolve table -> file path. If table looks like a filename (has .csv),
        use it directly (relative to data_dir). Otherwise try config mapping,
        else fallback to table + .csv
        """
        if table.endswith(".csv"):
            return Path(self.data_dir) / Path(table)

        mapping = {
            "orders": settings.ORDERS_FILE,
            "order_items": settings.ORDER_ITEMS_FILE,
        }
        filename = mapping.get(table, f"{table}.csv")
        return Path(self.data_dir) / Path(filename)

    def _lock_pair(self, path: Path) -> Tuple[threading.RLock, FileLock]:
        key = str(path)
        with self._locks_guard:
            pair = self._locks.get(key)
            if pair is None:
                pair = (threading.RLock(), FileLock(key + ".lock", timeout=self.lock_timeout))
                self._locks[key] = pair
            return pair

    @contextmanager
    def _locked(self, table: str) -> Iterator[Path]:
        path = self._file_path(table)
        path.parent.mkdir(parents=True, exist_ok=True)
        thread_lock, file_lock = self._lock_pair(path)
        with thread_lock:
            with file_lock:
                yield path

    @contextmanager
    def transaction(self, table: str) -> Iterator[None]:
        """
        Hold the exclusive lock on `table` for the duration of the block.
        Re-entrant: primitives called inside the block reuse the held lock.
        """
        try:
            with self._locked(table):
                yield
        except _STORAGE_ERRORS as exc:
            raise InfrastructureError(f"Storage failure on table '{table}': {exc}") from exc

    def _read_df(self, table: str) -> pd.DataFrame:
        path = self._file_path(table)
        if not path.exists() or path.stat().st_size == 0:
            return pd.DataFrame()
        return pd.read_csv(path, dtype=str, keep_default_na=False)

    def _write_df_nolock(self, table: str, df: pd.DataFrame) -> None:
        """
        Write DataFrame for `table` WITHOUT acquiring the lock.
        Use this only when the caller already holds the lock.
        """
        path = self._file_path(table)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        df.to_csv(tmp, index=False)
        os.replace(tmp, path)

    @staticmethod
    def _rows(df: pd.DataFrame) -> List[Dict[str, Any]]:
        if df.empty:
            return []
        return df.to_dict(orient="records")

    # --- high-level primitives ---

    def list_records(self, table: str) -> List[Dict[str, Any]]:
        with self.transaction(table):
            return self._rows(self._read_df(table))

    def get_record(self, table: str, key: str, value: Any) -> Optional[Dict[str, Any]]:
        with self.transaction(table):
            df = self._read_df(table)
        if df.empty or key not in df.columns:
            return None
        # treat everything as string for comparison simplicity
        mask = df[key].astype(str) == str(value)
        if not mask.any():
            return None
        return df[mask].iloc[0].to_dict()

    def find_records(self, table: str, key: str, values: Iterable[Any]) -> List[Dict[str, Any]]:
        """All rows whose `key` equals any of `values`, in file order."""
        wanted = {str(v) for v in values}
        with self.transaction(table):
            df = self._read_df(table)
        if df.empty or not wanted or key not in df.columns:
            return []
        return self._rows(df[df[key].astype(str).isin(wanted)])

    def query_page(
        self,
        table: str,
        where: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """
        Equality-filtered, sorted slice of `table`. Returns (rows, total_matching).
        Ties on `order_by` fall back to file order (reversed when descending).
        """
        with self.transaction(table):
            df = self._read_df(table)
        if df.empty:
            return [], 0
        df = df.assign(_seq=range(len(df)))
        for k, v in (where or {}).items():
            if k not in df.columns:
                return [], 0
            df = df[df[k].astype(str) == str(v)]
        total = len(df)
        if order_by:
            df = df.sort_values([order_by, "_seq"], ascending=not descending, kind="mergesort")
        end = None if limit is None else offset + limit
        df = df.iloc[offset:end].drop(columns=["_seq"])
        return self._rows(df), total

    def create_record(self, table: str, data: Dict[str, Any], id_field: str = "id") -> Dict[str, Any]:
        """
        Create a new record. If id_field not present in `data`, one will be generated (uuid4 hex).
        Returns the saved record (with id).
        """
        with self.transaction(table):
            df = self._read_df(table)
            row = self._with_id(data, id_field)
            self._write_df_nolock(table, self._append(df, [row]))
        return row

    def create_with_children(
        self,
        parent_table: str,
        parent: Dict[str, Any],
        child_table: str,
        children: List[Dict[str, Any]],
        fk_field: str,
        id_field: str = "id",
    ) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
        """
        Persist a parent row and its child rows as one unit: either both tables
        gain the rows or neither does. Child rows get `fk_field` set to the parent id.
        """
        with self.transaction(parent_table), self.transaction(child_table):
            parent_df = self._read_df(parent_table)
            child_df = self._read_df(child_table)

            parent_row = self._with_id(parent, id_field)
            child_rows = [self._with_id({**c, fk_field: parent_row[id_field]}, id_field) for c in children]

            # children first: a parent row must never be visible without its children
            self._write_df_nolock(child_table, self._append(child_df, child_rows))
            try:
                self._write_df_nolock(parent_table, self._append(parent_df, [parent_row]))
            except Exception:
                logger.error("Parent write to %s failed; restoring %s", parent_table, child_table)
                self._write_df_nolock(child_table, child_df)
                raise
        return parent_row, child_rows

    def update_record(
        self,
        table: str,
        key: str,
        value: Any,
        updates: Dict[str, Any],
        expected: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Update the row where df[key] == value with fields in updates. Returns the updated row dict
        or None when no row matches.

        When `expected` is given the update is conditional: every expected field must still hold
        its expected value, otherwise ConcurrentModificationError is raised and nothing is written.
        """
        with self.transaction(table):
            df = self._read_df(table)
            if df.empty or key not in df.columns:
                return None
            mask = df[key].astype(str) == str(value)
            if not mask.any():
                return None
            current = df[mask].iloc[0]
            for k, v in (expected or {}).items():
                if str(current.get(k, "")) != str(v):
                    raise ConcurrentModificationError(
                        f"Record {value} in '{table}' changed concurrently ({k}: expected {v}, found {current.get(k)})")
            for k, v in updates.items():
                df.loc[mask, k] = "" if v is None else str(v)
            self._write_df_nolock(table, df)
            return df[mask].iloc[0].to_dict()

    # --- helpers ---

    @staticmethod
    def _with_id(data: Dict[str, Any], id_field: str) -> Dict[str, Any]:
        row = {k: ("" if v is None else v) for k, v in data.items()}
        if not row.get(id_field):
            row[id_field] = uuid.uuid4().hex
        return row

    @staticmethod
    def _append(df: pd.DataFrame, rows: List[Dict[str, Any]]) -> pd.DataFrame:
        new = pd.DataFrame([{k: str(v) for k, v in r.items()} for r in rows])
        if len(df.columns) == 0:
            return new
        return pd.concat([df, new], ignore_index=True, sort=False)


# module-level singleton for convenience
db = FileBackedDB()
