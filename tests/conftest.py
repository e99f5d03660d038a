"""Shared fixtures: a manually driven event loop and an in-process backend."""

import subprocess
from pathlib import Path

import pytest

from core.config import Config
from editor.session import EditingSession


class FakeTimer:
    """Stand-in for asyncio.TimerHandle."""

    def __init__(self, when, callback, args):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeLoop:
    """Event loop double with a virtual clock.

    ``call_soon_threadsafe`` callbacks queue until ``run_pending``;
    ``call_later`` timers fire when ``advance`` passes their deadline.
    """

    def __init__(self):
        self.now = 0.0
        self.timers = []
        self.ready = []

    def time(self):
        return self.now

    def is_closed(self):
        return False

    def call_later(self, delay, callback, *args):
        timer = FakeTimer(self.now + delay, callback, args)
        self.timers.append(timer)
        return timer

    def call_soon_threadsafe(self, callback, *args):
        self.ready.append((callback, args))

    def run_pending(self):
        while self.ready:
            callback, args = self.ready.pop(0)
            callback(*args)

    def advance(self, seconds):
        self.now += seconds
        due = sorted((t for t in self.timers if t.when <= self.now and not t.cancelled), key=lambda t: t.when)
        self.timers = [t for t in self.timers if t not in due and not t.cancelled]
        for timer in due:
            timer.callback(*timer.args)
        self.run_pending()

    def pending_timers(self):
        return [t for t in self.timers if not t.cancelled]


class FakeClient:
    """In-process replacement for LSPClient recording what would be sent."""

    start_result = True

    def __init__(self, cmd, root, name="llmcoder"):
        self.cmd = cmd
        self.root = root
        self.running = False
        self.next_id = 1
        self.triggers = []
        self.cancels = 0
        self.opened = {}
        self.changes = []
        self.closed = []
        self.project_files = []
        self.notification_handlers = {}
        self.request_handlers = {}
        self.stopped = False

    def on_notification(self, method, handler):
        self.notification_handlers[method] = handler

    def on_request(self, method, handler):
        self.request_handlers[method] = handler

    def start(self):
        self.running = self.start_result
        return self.start_result

    def stop(self):
        self.running = False
        self.stopped = True

    def did_open(self, uri, language_id, text, version=1):
        self.opened[uri] = (language_id, text, version)

    def did_change(self, uri, text, version):
        self.changes.append((uri, text, version))

    def did_close(self, uri):
        self.closed.append(uri)

    def trigger_completion(self, uri, line, character, callback):
        if not self.running:
            return -1
        request_id = self.next_id
        self.next_id += 1
        self.triggers.append({"id": request_id, "uri": uri, "line": line, "character": character,
                              "callback": callback})
        return request_id

    def cancel_completion(self):
        self.cancels += 1

    def submit_project_file(self, path, content, root):
        self.project_files.append((path, content, root))

    # Test helpers

    def respond(self, index=-1, text="", line=None, uri=None, error=None):
        """Answer a recorded trigger request, by default the latest."""
        request = self.triggers[index]
        if error is not None:
            request["callback"](error, None)
            return
        result = {
            "uri": uri if uri is not None else request["uri"],
            "line": request["line"] if line is None else line,
            "text": text,
        }
        request["callback"](None, result)

    def notify(self, method, params):
        self.notification_handlers[method](params)


@pytest.fixture
def fake_loop():
    return FakeLoop()


@pytest.fixture
def make_session(fake_loop, tmp_path, monkeypatch):
    """Build started EditingSessions backed by FakeClient."""
    monkeypatch.chdir(tmp_path)
    created = []

    def factory(overrides=None, notify=None):
        config = Config.from_mapping(overrides or {})
        session = EditingSession(
            config,
            loop=fake_loop,
            notify=notify,
            client_factory=FakeClient,
            prime_in_background=False,
        )
        session.start()
        created.append(session)
        return session

    yield factory

    for session in created:
        session.close()


def client_for(session, document_id):
    """The FakeClient serving a document."""
    return session.sessions.by_document[document_id][0].client


def open_at(session, key, text, line, column):
    """Open an in-memory buffer and put the cursor at (line, column)."""
    session.buffers.open_text(key, text)
    session.buffers.set_cursor(key, line, column)
    return key


@pytest.fixture
def git_repo(tmp_path):
    """A repository with a commit, untracked and ignored files."""
    repo = tmp_path / "repo"
    repo.mkdir()
    subprocess.run(["git", "init"], cwd=repo, check=True, capture_output=True)
    subprocess.run(["git", "config", "user.name", "Test User"], cwd=repo, check=True)
    subprocess.run(["git", "config", "user.email", "test@example.com"], cwd=repo, check=True)

    (repo / "README.md").write_text("# Test Repo\n")
    (repo / ".gitignore").write_text("*.log\n")
    (repo / "src").mkdir()
    (repo / "src" / "main.py").write_text("print('hi')\n")
    (repo / "src" / ".gitignore").write_text("build/\n")
    (repo / ".gitmodules").write_text("")
    subprocess.run(["git", "add", "-A"], cwd=repo, check=True)
    subprocess.run(["git", "commit", "-m", "Initial commit"], cwd=repo, check=True, capture_output=True)

    (repo / "notes.txt").write_text("untracked\n")
    (repo / "debug.log").write_text("ignored\n")
    return Path(repo)
