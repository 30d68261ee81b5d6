"""
JSON file record store for coasters and wagons.

Two files per environment directory, ``coasters.json`` and
``wagons.json``, each holding a JSON array. Writes go to a temporary file
that is then renamed over the original. A single re-entrant lock covers
every read-modify-write, so a local update and a replicated one for the
same record cannot interleave.
"""
import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from ..core.errors import StoreError
from ..core.models import Coaster, CoasterUpdate, Wagon


class RecordStore:
    """
    Durable storage for coaster and wagon records

    Lookups return None / False for unknown ids. I/O and decoding failures
    raise ``StoreError``.
    """

    def __init__(self, data_dir: Union[str, Path]):
        """
        Args:
            data_dir: Directory holding ``coasters.json`` and ``wagons.json``
        """
        self.data_dir = Path(data_dir)
        self.coasters_file = self.data_dir / "coasters.json"
        self.wagons_file = self.data_dir / "wagons.json"
        self.logger = logging.getLogger("RecordStore")
        self._lock = threading.RLock()
        self._init_files()

    def _init_files(self):
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            for path in (self.coasters_file, self.wagons_file):
                if not path.exists():
                    path.write_text("[]")
                    self.logger.info(f"Created data file at {path}")
        except OSError as e:
            raise StoreError(f"Cannot initialise data directory {self.data_dir}: {e}") from e

    def _read(self, path: Path) -> List[Dict[str, Any]]:
        try:
            with open(path, 'r') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Cannot read {path}: {e}") from e

    def _write(self, path: Path, records: List[Dict[str, Any]]):
        temp_file = path.with_suffix('.tmp')
        try:
            with open(temp_file, 'w') as f:
                json.dump(records, f, indent=2)
            temp_file.replace(path)
        except OSError as e:
            raise StoreError(f"Cannot write {path}: {e}") from e

    def _load_coasters(self) -> List[Coaster]:
        try:
            return [Coaster.model_validate(item) for item in self._read(self.coasters_file)]
        except ValidationError as e:
            raise StoreError(f"Corrupt coaster record in {self.coasters_file}: {e}") from e

    def _load_wagons(self) -> List[Wagon]:
        try:
            return [Wagon.model_validate(item) for item in self._read(self.wagons_file)]
        except ValidationError as e:
            raise StoreError(f"Corrupt wagon record in {self.wagons_file}: {e}") from e

    # Coasters

    def list_coasters(self) -> List[Coaster]:
        with self._lock:
            return self._load_coasters()

    def get_coaster(self, coaster_id: str) -> Optional[Coaster]:
        with self._lock:
            for coaster in self._load_coasters():
                if coaster.id == coaster_id:
                    return coaster
            return None

    def put_coaster(self, coaster: Coaster) -> Coaster:
        """Insert ``coaster``, or replace the stored record with the same id"""
        with self._lock:
            coasters = self._load_coasters()
            for index, existing in enumerate(coasters):
                if existing.id == coaster.id:
                    coasters[index] = coaster
                    break
            else:
                coasters.append(coaster)
            self._write(self.coasters_file, [c.to_dict() for c in coasters])
            self.logger.info(f"Coaster stored: {coaster.id}")
            return coaster

    def update_coaster(self, coaster_id: str,
                       update: Union[CoasterUpdate, Dict[str, Any]]) -> Optional[Coaster]:
        """
        Apply a partial update

        The track length and id of the stored record are always kept,
        whatever the update carries.

        Args:
            coaster_id: Coaster to update
            update: CoasterUpdate or a raw mapping of fields

        Returns:
            The updated coaster, or None if no coaster has this id
        """
        if not isinstance(update, CoasterUpdate):
            update = CoasterUpdate.model_validate(update)

        with self._lock:
            coasters = self._load_coasters()
            for index, existing in enumerate(coasters):
                if existing.id == coaster_id:
                    break
            else:
                self.logger.warning(f"Coaster not found for update: {coaster_id}")
                return None

            merged = existing.model_dump()
            merged.update(update.changes())
            merged['id'] = existing.id
            merged['track_length'] = existing.track_length
            updated = Coaster.model_validate(merged)

            coasters[index] = updated
            self._write(self.coasters_file, [c.to_dict() for c in coasters])
            self.logger.info(f"Coaster updated: {coaster_id}")
            return updated

    # Wagons

    def list_wagons(self, coaster_id: str) -> List[Wagon]:
        with self._lock:
            return [w for w in self._load_wagons() if w.coaster_id == coaster_id]

    def list_all_wagons(self) -> List[Wagon]:
        with self._lock:
            return self._load_wagons()

    def put_wagon(self, wagon: Wagon) -> Wagon:
        """Insert ``wagon``, or replace the stored record with the same id"""
        with self._lock:
            wagons = self._load_wagons()
            for index, existing in enumerate(wagons):
                if existing.id == wagon.id:
                    wagons[index] = wagon
                    break
            else:
                wagons.append(wagon)
            self._write(self.wagons_file, [w.to_dict() for w in wagons])
            self.logger.info(f"Wagon stored: {wagon.id} on coaster: {wagon.coaster_id}")
            return wagon

    def delete_wagon(self, coaster_id: str, wagon_id: str) -> bool:
        """
        Remove a wagon

        Returns:
            False when no wagon with ``wagon_id`` belongs to ``coaster_id``
        """
        with self._lock:
            wagons = self._load_wagons()
            remaining = [w for w in wagons if not (w.coaster_id == coaster_id and w.id == wagon_id)]
            if len(remaining) == len(wagons):
                self.logger.warning(f"Wagon not found for removal: {wagon_id} from coaster: {coaster_id}")
                return False
            self._write(self.wagons_file, [w.to_dict() for w in remaining])
            self.logger.info(f"Wagon removed: {wagon_id} from coaster: {coaster_id}")
            return True
