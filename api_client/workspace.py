
import json
import logging
import os
from typing import List, Optional

import yaml
from pydantic import ValidationError

from .config import AppConfig, ConfigStorage, JsonConfigStorage
from .models import HttpMethod, KeyValue, Request, SavedRequest, WorkspaceEntry
from .utils import sanitize_filename, sanitize_rename

logger = logging.getLogger("Workspace")

EXTENSIONS = (".json", ".yaml", ".yml")
SAVE_EXTENSION = ".json"

PARSE_ERRORS = (OSError, ValueError, yaml.YAMLError, ValidationError)


def read_saved_request(path) -> SavedRequest:
    """Parse a request file, raises one of PARSE_ERRORS on failure"""
    with open(path, "r", encoding="utf-8") as f:
        text = f.read()
    if path.endswith(".json"):
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)
    return SavedRequest.model_validate(data)


def infer_method(path) -> Optional[HttpMethod]:
    try:
        return HttpMethod.parse(read_saved_request(path).method)
    except PARSE_ERRORS as e:
        logger.debug(f"Could not infer method for {path}: {e}")
        return None


def scan_folder(folder) -> List[WorkspaceEntry]:
    """List request files directly inside folder, sorted by name"""
    try:
        names = os.listdir(folder)
    except OSError as e:
        logger.warning(f"Cannot read folder {folder}: {e}")
        return []

    entries = []
    for name in names:
        stem, ext = os.path.splitext(name)
        path = os.path.join(folder, name)
        if ext not in EXTENSIONS or not os.path.isfile(path):
            continue
        entries.append(WorkspaceEntry(stem, path, infer_method(path)))

    entries.sort(key=lambda e: (e.display_name, e.path))
    return entries


def shift_selection(selected, deleted):
    """Selection after the entry at `deleted` is removed"""
    if selected is None or selected == deleted:
        return None
    if selected > deleted:
        return selected - 1
    return selected


class WorkspaceStore:
    """Keeps an index of saved request files in sync with a folder"""

    def __init__(self, config: Optional[AppConfig] = None, storage: Optional[ConfigStorage] = None):
        self.storage = storage or JsonConfigStorage()
        self.config = config or self.storage.load()
        self.current_folder = None
        self.entries: List[WorkspaceEntry] = []
        self.selected: Optional[int] = None
        self.folder_listeners = []

        last = self.config.last_opened_folder
        if last and os.path.isdir(last):
            self.current_folder = os.path.abspath(last)
            self.rescan()

    def add_folder_listener(self, callback):
        """callback(folder) runs after every open()"""
        self.folder_listeners.append(callback)

    @property
    def selected_entry(self) -> Optional[WorkspaceEntry]:
        if self.selected is None:
            return None
        return self.entries[self.selected]

    def _valid(self, index) -> bool:
        return index is not None and 0 <= index < len(self.entries)

    def _index_of(self, path) -> Optional[int]:
        for i, entry in enumerate(self.entries):
            if entry.path == path:
                return i
        return None

    def _free_path(self, stem, pattern, n, numbered=False):
        """First path under the folder that does not exist yet. New saves
        never overwrite: 'name', 'name-2', ... or 'New Request N', N+1, ..."""
        candidate = pattern.format(stem=stem, n=n) if numbered else stem
        while os.path.exists(os.path.join(self.current_folder, candidate + SAVE_EXTENSION)):
            if not numbered:
                numbered = True
            else:
                n += 1
            candidate = pattern.format(stem=stem, n=n)
        return os.path.join(self.current_folder, candidate + SAVE_EXTENSION)

    def select(self, index):
        if self._valid(index):
            self.selected = index

    def clear_selection(self):
        self.selected = None

    def open(self, path):
        folder = os.path.abspath(path)
        self.current_folder = folder
        self.config.last_opened_folder = folder
        self.storage.save(self.config)
        self.rescan()
        logger.info(f"Opened workspace {folder} ({len(self.entries)} requests)")

        for listener in list(self.folder_listeners):
            listener(folder)

    def rescan(self) -> List[WorkspaceEntry]:
        previous = self.selected_entry.path if self.selected_entry else None
        self.entries = scan_folder(self.current_folder) if self.current_folder else []
        self.selected = self._index_of(previous)
        return self.entries

    def save(self, request: Request, associated_index=None) -> Optional[str]:
        """Write request to disk, returns the path written or None"""
        if not self.current_folder:
            return None

        name = request.name.strip()
        if self._valid(associated_index):
            path = self.entries[associated_index].path
            name = name or self.entries[associated_index].display_name
        elif name:
            path = self._free_path(sanitize_filename(name), "{stem}-{n}", 2)
        else:
            path = self._free_path("New Request", "{stem} {n}", len(self.entries) + 1, numbered=True)
            name = os.path.splitext(os.path.basename(path))[0]

        record = SavedRequest(
            name=name,
            method=request.method.value,
            url=request.effective_url(),
            headers=dict(request.effective_headers()),
            body=request.body,
        )

        written = True
        try:
            with open(path, "w", encoding="utf-8") as f:
                f.write(record.model_dump_json(indent=2))
        except OSError as e:
            logger.warning(f"Failed to save {path}: {e}")
            written = False

        self.rescan()
        self.selected = self._index_of(path)
        return path if written else None

    def load(self, index) -> Optional[Request]:
        if not self._valid(index):
            return None

        entry = self.entries[index]
        try:
            record = read_saved_request(entry.path)
        except PARSE_ERRORS as e:
            logger.warning(f"Failed to load {entry.path}: {e}")
            return None

        # Trailing blank row leaves room for one more header
        headers = [KeyValue(k, v) for k, v in record.headers.items()]
        headers.append(KeyValue())

        self.selected = index
        return Request(
            name=entry.display_name,
            method=HttpMethod.from_text(record.method),
            url=record.url,
            parameters=[KeyValue()],
            headers=headers,
            body=record.body,
        )

    def rename(self, index, new_name) -> Optional[str]:
        """Rename the file behind an entry, returns the new path or None"""
        if not self.current_folder or not self._valid(index):
            return None

        clean = sanitize_rename(new_name)
        if not clean:
            return None

        entry = self.entries[index]
        if not clean.endswith(EXTENSIONS):
            clean += os.path.splitext(entry.path)[1] or SAVE_EXTENSION
        new_path = os.path.join(self.current_folder, clean)
        if new_path == entry.path:
            return new_path

        if os.path.exists(new_path) and not os.path.samefile(new_path, entry.path):
            logger.warning(f"Cannot rename {entry.path}: {new_path} already exists")
            return None

        try:
            os.rename(entry.path, new_path)
        except OSError as e:
            logger.warning(f"Failed to rename {entry.path}: {e}")
            return None

        was_selected = self.selected == index
        self.rescan()
        if was_selected:
            self.selected = self._index_of(new_path)
        return new_path

    def delete(self, index) -> bool:
        if not self._valid(index):
            return False

        entry = self.entries[index]
        try:
            os.remove(entry.path)
        except OSError as e:
            logger.warning(f"Failed to delete {entry.path}: {e}")
            return False

        del self.entries[index]
        self.selected = shift_selection(self.selected, index)
        return True
