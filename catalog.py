# catalog.py
"""
File-backed catalog of selectable frequencies.

The file holds {"samples": [{id, name, frequency, category}],
"categoryNames": {key: label}}. Reads are open to everyone; every
mutation needs the manager password.
"""

import copy
import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_CATALOG = {
    "samples": [
        {"id": 1, "name": "Do (C)", "frequency": 262, "category": "note"},
        {"id": 2, "name": "Re (D)", "frequency": 294, "category": "note"},
        {"id": 3, "name": "Mi (E)", "frequency": 330, "category": "note"},
        {"id": 4, "name": "Fa (F)", "frequency": 349, "category": "note"},
        {"id": 5, "name": "Sol (G)", "frequency": 392, "category": "note"},
        {"id": 6, "name": "La (A)", "frequency": 440, "category": "note"},
        {"id": 7, "name": "Si (B)", "frequency": 494, "category": "note"},
        {"id": 8, "name": "Low family", "frequency": 50, "category": "freq"},
        {"id": 9, "name": "Middle family", "frequency": 500, "category": "freq"},
        {"id": 10, "name": "High family", "frequency": 2000, "category": "freq"},
    ],
    "categoryNames": {
        "note": "Musical notes",
        "freq": "Special frequencies",
    },
}


class CatalogError(Exception):
    pass


class InvalidPasswordError(CatalogError):
    pass


class FrequencyCatalog:
    def __init__(self, path, password):
        self.path = Path(path)
        self.password = password
        if not self.path.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._write(copy.deepcopy(DEFAULT_CATALOG))
            logger.info(f"Created default catalog at {self.path}")

    def list_frequencies(self):
        return self._read()

    def update_frequencies(self, password, samples):
        self._check(password)
        data = self._read()
        data["samples"] = list(samples)
        self._write(data)
        logger.info(f"Catalog samples replaced ({len(data['samples'])} entries)")

    def update_categories(self, password, category_names):
        self._check(password)
        data = self._read()
        data["categoryNames"] = dict(category_names)
        self._write(data)
        logger.info("Catalog categories updated")

    def add_frequency(self, password, name, frequency, category):
        self._check(password)
        try:
            frequency = float(frequency)
        except (TypeError, ValueError) as e:
            raise CatalogError(f"Invalid frequency {frequency!r}") from e

        data = self._read()
        new_id = max([s["id"] for s in data["samples"]] + [0]) + 1
        sample = {"id": new_id, "name": name, "frequency": frequency, "category": category}
        data["samples"].append(sample)
        self._write(data)
        logger.info(f"Added {name} - {frequency:g} Hz as #{new_id}")
        return sample

    def delete_frequency(self, password, sample_id):
        self._check(password)
        try:
            sample_id = int(sample_id)
        except (TypeError, ValueError) as e:
            raise CatalogError(f"Invalid sample id {sample_id!r}") from e
        data = self._read()
        before = len(data["samples"])
        data["samples"] = [s for s in data["samples"] if s["id"] != sample_id]
        self._write(data)
        removed = before - len(data["samples"])
        logger.info(f"Deleted sample #{sample_id} ({removed} removed)")
        return removed > 0

    def _check(self, password):
        if password != self.password:
            raise InvalidPasswordError("Invalid password")

    def _read(self):
        try:
            with open(self.path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise CatalogError(f"Failed to read frequencies: {e}") from e

    def _write(self, data):
        try:
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
        except OSError as e:
            raise CatalogError(f"Failed to write frequencies: {e}") from e
