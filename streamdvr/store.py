import json
import logging
import os


class SiteStore:
    """Persisted streamer list and pending updates for one site.

    ``<config_dir>/<site>.json`` holds a JSON array of streamer names.
    ``<config_dir>/<site>_updates.json`` holds ``{"include": [...],
    "exclude": [...]}``; entries are cleared from it once taken.
    """

    def __init__(self, config_dir, list_name):
        self.list_file = os.path.join(config_dir, list_name + ".json")
        self.updates_file = os.path.join(config_dir, list_name + "_updates.json")

    def load_streamers(self):
        try:
            with open(self.list_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        if not isinstance(data, list):
            raise ValueError(f"'{self.list_file}' should contain a JSON array of streamer names")
        return [str(nm) for nm in data]

    def save_streamers(self, streamers):
        with open(self.list_file, 'w', encoding='utf-8') as f:
            json.dump(list(streamers), f, indent=2)
        logging.debug(f"Rewriting {self.list_file}")

    def take_updates(self, key):
        """Return and clear the ``include`` or ``exclude`` list from the updates file."""
        if not os.path.isfile(self.updates_file):
            return []
        with open(self.updates_file, 'r', encoding='utf-8') as f:
            updates = json.load(f) or {}

        taken = list(updates.get(key) or [])
        if taken:
            updates[key] = []
            with open(self.updates_file, 'w', encoding='utf-8') as f:
                json.dump(updates, f, indent=2)
        return taken
