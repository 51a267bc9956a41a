
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, VerticalScroll
from textual.message import Message
from textual.widgets import (Button, Footer, Header, Input, Label, ListItem, ListView, Log,
                             Select, Static, TextArea)
import asyncio

from .git_status import repository_status
from .http_client import Dispatcher
from .models import HttpMethod, KeyValue, Request
from .workspace import WorkspaceStore

# Characters of an oversized body shown in the response pane
PREVIEW_CHARS = 5000

LOG_LINES = 500


def parse_rows(text, sep):
    """'key<sep>value' lines to KeyValue rows, a leading '#' disables the row"""
    rows = []
    for line in text.splitlines():
        if not line.strip():
            continue
        enabled = not line.lstrip().startswith("#")
        line = line.lstrip().lstrip("#")
        key, _, value = line.partition(sep)
        rows.append(KeyValue(key.strip(), value.strip(), enabled))
    return rows


def format_rows(rows, sep):
    lines = []
    for row in rows:
        if not row.key:
            continue
        prefix = "" if row.enabled else "#"
        lines.append(f"{prefix}{row.key}{sep}{row.value}")
    return "\n".join(lines)


class DispatchFinished(Message):
    def __init__(self, record):
        super().__init__()
        self.record = record


class ApiClientTui(App):
    CSS = """
    Screen {
        layout: grid;
        grid-size: 2;
        grid-columns: 1fr 3fr;
        grid-rows: 1fr;
    }

    .sidebar {
        height: 100%;
        overflow-y: auto;
    }

    .main {
        height: 100%;
        padding: 0 1;
        overflow-y: auto;
    }

    .control-box {
        background: $panel;
        border: solid $accent;
        padding: 0 1;
        margin: 1 0;
        height: auto;
    }

    .box-title {
        color: $accent;
        text-style: bold;
    }

    #entries {
        height: auto;
        max-height: 20;
    }

    .request-bar {
        height: auto;
    }

    #method {
        width: 16;
    }

    #url, #name {
        width: 1fr;
    }

    .editor {
        height: 6;
    }

    #response {
        height: 16;
        border: solid $accent;
    }

    #logs {
        height: 6;
    }

    .status-ok {
        color: $success;
        text-style: bold;
    }

    .status-error {
        color: $error;
        text-style: bold;
    }
    """

    BINDINGS = [
        Binding("ctrl+r", "send", "Send"),
        Binding("ctrl+s", "save", "Save"),
        Binding("ctrl+n", "new_request", "New"),
        Binding("ctrl+d", "delete", "Delete"),
        Binding("f2", "rename", "Rename"),
        Binding("ctrl+t", "cycle_method", "Method"),
    ]

    def __init__(self, store=None, dispatcher=None):
        super().__init__()
        self.store = store or WorkspaceStore()
        self.dispatcher = dispatcher or Dispatcher()
        self.dispatcher.on_complete = lambda record: self.post_message(DispatchFinished(record))
        self.log_queue = asyncio.Queue()
        self.dispatcher.log_queue = self.log_queue
        self.store.add_folder_listener(lambda folder: self.refresh_git())

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)

        with VerticalScroll(classes="sidebar"):
            with Container(classes="control-box"):
                yield Label("Workspace", classes="box-title")
                yield Input(placeholder="Folder path, Enter to open", id="folder",
                            value=self.store.current_folder or "")
                yield ListView(id="entries")

            with Container(classes="control-box"):
                yield Label("Repository", classes="box-title")
                yield Static("", id="git_status", markup=False)

        with Container(classes="main"):
            with Horizontal(classes="request-bar"):
                yield Select([(m.value, m) for m in HttpMethod], value=HttpMethod.GET,
                             allow_blank=False, id="method")
                yield Input(placeholder="https://example.com/api", id="url")
                yield Button("Send", id="send", variant="primary")
            with Horizontal(classes="request-bar"):
                yield Input(placeholder="Request name", id="name")
                yield Button("Save", id="save")
                yield Button("Rename", id="rename")
                yield Button("Delete", id="delete", variant="error")

            yield Label("Params (key=value, # disables)")
            yield TextArea(id="params", classes="editor")
            yield Label("Headers (Key: Value, # disables)")
            yield TextArea(id="headers", classes="editor")
            yield Label("Body")
            yield TextArea(id="body", classes="editor")

            yield Label("", id="status_label")
            yield TextArea(id="response", read_only=True, show_line_numbers=False)
            yield Log(id="logs", max_lines=LOG_LINES)

        yield Footer()

    async def on_mount(self):
        self.log_worker = asyncio.create_task(self.process_logs())
        await self.refresh_entries()
        self.refresh_git()

    async def process_logs(self):
        log_widget = self.query_one("#logs", Log)
        while True:
            msg = await self.log_queue.get()
            log_widget.write_line(msg)

    # Workspace

    async def refresh_entries(self):
        entries = self.query_one("#entries", ListView)
        await entries.clear()
        items = []
        for entry in self.store.entries:
            method = entry.inferred_method.value if entry.inferred_method else "?"
            items.append(ListItem(Label(f"{method:<6} {entry.display_name}", markup=False)))
        await entries.extend(items)
        entries.index = self.store.selected

    def refresh_git(self):
        pane = self.query_one("#git_status", Static)
        if not self.store.current_folder:
            pane.update("No folder open")
            return

        status = repository_status(self.store.current_folder)
        if status is None:
            pane.update("Not a repository")
            return

        lines = [f"On {status.branch_name or '?'}", f"Staged ({len(status.staged)})"]
        lines += [f"  {c.kind.value[0]} {c.path}" for c in status.staged]
        lines.append(f"Changes ({len(status.unstaged)})")
        lines += [f"  {c.kind.value[0]} {c.path}" for c in status.unstaged]
        pane.update("\n".join(lines))

    def read_form(self) -> Request:
        return Request(
            name=self.query_one("#name", Input).value,
            method=HttpMethod(self.query_one("#method", Select).value),
            url=self.query_one("#url", Input).value.strip(),
            parameters=parse_rows(self.query_one("#params", TextArea).text, "="),
            headers=parse_rows(self.query_one("#headers", TextArea).text, ":"),
            body=self.query_one("#body", TextArea).text,
        )

    def fill_form(self, request: Request):
        self.query_one("#name", Input).value = request.name
        self.query_one("#method", Select).value = request.method
        self.query_one("#url", Input).value = request.url
        self.query_one("#params", TextArea).load_text(format_rows(request.parameters, "="))
        self.query_one("#headers", TextArea).load_text(format_rows(request.headers, ": "))
        self.query_one("#body", TextArea).load_text(request.body)

    def load_entry(self, index):
        request = self.store.load(index)
        if request is None:
            self.notify("Could not load request file", severity="warning")
            return
        self.fill_form(request)

    async def on_list_view_selected(self, event: ListView.Selected) -> None:
        if event.list_view.id == "entries" and event.list_view.index is not None:
            self.load_entry(event.list_view.index)

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "folder" and event.value.strip():
            self.store.open(event.value.strip())
            await self.refresh_entries()
        elif event.input.id == "url":
            self.action_send()

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        actions = {
            "send": self.action_send,
            "save": self.action_save,
            "rename": self.action_rename,
            "delete": self.action_delete,
        }
        action = actions.get(event.button.id)
        if action:
            result = action()
            if asyncio.iscoroutine(result):
                await result

    async def action_save(self):
        if not self.store.current_folder:
            self.notify("Open a folder first", severity="warning")
            return
        path = self.store.save(self.read_form(), self.store.selected)
        if path is None:
            self.notify("Save failed", severity="error")
        await self.refresh_entries()
        if self.store.selected_entry:
            self.query_one("#name", Input).value = self.store.selected_entry.display_name
        self.refresh_git()

    async def action_rename(self):
        if self.store.selected is None:
            return
        if self.store.rename(self.store.selected, self.query_one("#name", Input).value) is None:
            self.notify("Rename failed", severity="warning")
        await self.refresh_entries()
        self.refresh_git()

    async def action_delete(self):
        if self.store.selected is None:
            return
        if not self.store.delete(self.store.selected):
            self.notify("Delete failed", severity="error")
        await self.refresh_entries()
        self.refresh_git()

    def action_cycle_method(self):
        select = self.query_one("#method", Select)
        select.value = HttpMethod(select.value).next()

    def action_new_request(self):
        self.store.clear_selection()
        self.query_one("#entries", ListView).index = None
        self.fill_form(Request(parameters=[KeyValue()], headers=[KeyValue()]))

    # Dispatch

    def action_send(self):
        request = self.read_form()
        if not request.url:
            return
        if self.dispatcher.dispatch(request) is None:
            self.notify("A request is already in flight", severity="warning")
            return
        self.query_one("#status_label", Label).update("Sending...")

    def on_dispatch_finished(self, message: DispatchFinished) -> None:
        record = message.record
        status_label = self.query_one("#status_label", Label)
        status_label.update(f"{record.status_code} {record.status_label}  {record.elapsed * 1000:.0f} ms")
        status_label.set_class(record.status_code == 0 or record.status_code >= 400, "status-error")
        status_label.set_class(200 <= record.status_code < 300, "status-ok")

        body = record.body
        if record.body_oversized:
            body = f"[response too large, showing first {PREVIEW_CHARS} characters]\n" + body[:PREVIEW_CHARS]
        self.query_one("#response", TextArea).load_text(body)
