"""Tests for backend sessions and the editing session wiring."""

import logging
from unittest.mock import Mock

from conftest import FakeClient, client_for
from core.config import Config
from language.lsp_client import GET_PROJECT_FILES_METHOD
from language.session import BackendSession, SessionManager


class FailingClient(FakeClient):
    start_result = False


def manager(**kwargs):
    return SessionManager(Config.from_mapping({}), client_factory=FakeClient, prime_in_background=False, **kwargs)


def test_priming_sends_each_project_file_once(git_repo):
    session = BackendSession(Config.from_mapping({}), git_repo, FakeClient)
    session.start()

    sent = session.prime_project_context()
    again = session.prime_project_context()

    paths = [path for path, _, _ in session.client.project_files]
    assert sent == len(paths)
    assert again == 0
    assert "src/main.py" in paths
    assert ".gitignore" not in [p.rsplit("/", 1)[-1] for p in paths]
    assert all(root == str(git_repo.resolve()) for _, _, root in session.client.project_files)


def test_priming_outside_repository_sends_nothing(tmp_path):
    session = BackendSession(Config.from_mapping({}), tmp_path, FakeClient)
    session.start()

    assert session.prime_project_context() == 0
    assert session.client.project_files == []


def test_get_project_files_request(git_repo, tmp_path):
    session = BackendSession(Config.from_mapping({}), git_repo, FakeClient)
    handler = session.client.request_handlers[GET_PROJECT_FILES_METHOD]

    files = handler({})
    assert {"path": "README.md", "content": "# Test Repo\n"} in files

    outside = BackendSession(Config.from_mapping({}), tmp_path / "nowhere", FakeClient)
    assert outside.client.request_handlers[GET_PROJECT_FILES_METHOD]({}) is None


def test_documents_in_one_repository_share_a_backend(git_repo):
    sessions = manager()
    first = sessions.attach("a", str(git_repo / "README.md"), "# Test Repo\n")
    second = sessions.attach("b", str(git_repo / "src" / "main.py"), "print('hi')\n")

    assert first is second
    assert first.root == git_repo.resolve()
    assert sessions.uri_for("b") == (git_repo / "src" / "main.py").resolve().as_uri()
    assert sessions.document_for_uri(sessions.uri_for("a")) == "a"
    assert first.client.opened[sessions.uri_for("b")] == ("python", "print('hi')\n", 1)


def test_sync_and_detach(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    sessions = manager()
    session = sessions.attach("doc", None, "one")

    sessions.sync("doc", "two")
    sessions.sync("doc", "three")
    sessions.detach("doc")

    assert session.client.changes == [("untitled:doc", "two", 2), ("untitled:doc", "three", 3)]
    assert session.client.closed == ["untitled:doc"]
    assert sessions.session_for("doc") is None


def test_start_failure_warns_and_leaves_document_inactive(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    warn = Mock()
    sessions = SessionManager(Config.from_mapping({"server": {"cmd": ["backend"]}}), warn=warn,
                              client_factory=FailingClient, prime_in_background=False)

    assert sessions.attach("doc", None, "") is None
    assert sessions.session_for("doc") is None
    warn.assert_called_once_with("Failed to start completion backend: backend")


def test_stopped_backend_is_not_active(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    sessions = manager()
    session = sessions.attach("doc", None, "")
    session.client.running = False

    assert sessions.session_for("doc") is None


def test_shutdown_stops_every_backend(git_repo, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    sessions = manager()
    in_repo = sessions.attach("a", str(git_repo / "README.md"), "")
    scratch = sessions.attach("b", None, "")

    sessions.shutdown()

    assert in_repo is not scratch
    assert in_repo.client.stopped and scratch.client.stopped
    assert sessions.sessions == {}


class TestEditingSession:

    def test_buffers_attach_and_sync_on_change(self, make_session):
        session = make_session()
        session.buffers.open_text("doc", "a")
        client = client_for(session, "doc")

        session.buffers.get("doc").buffer.insert_text("b")

        assert client.opened["untitled:doc"][1] == "a"
        assert client.changes[-1][1] == "ba"

    def test_buffers_open_before_start_are_attached(self, fake_loop, tmp_path, monkeypatch):
        from editor.session import EditingSession

        monkeypatch.chdir(tmp_path)
        session = EditingSession(Config.from_mapping({}), loop=fake_loop, client_factory=FakeClient,
                                 prime_in_background=False)
        session.buffers.open_text("doc", "x")
        assert session.sessions.session_for("doc") is None

        session.start()
        assert session.sessions.session_for("doc") is not None
        session.close()

    def test_close_tears_down(self, make_session):
        session = make_session()
        session.buffers.open_text("doc", "x")
        session.trigger()
        client = client_for(session, "doc")

        session.close()

        assert client.cancels == 1
        assert client.stopped
        assert session.status()["backends"] == 0

    def test_status(self, make_session):
        session = make_session({"auto_trigger": {"enabled": True}})
        session.buffers.open_text("doc", "x")

        status = session.status()
        assert status == {"state": "idle", "backends": 1, "auto_trigger": True}
        assert session.get_config().auto_trigger_enabled is True

    def test_warnings_are_posted_to_the_loop(self, make_session, fake_loop):
        notify = Mock()
        session = make_session(notify=notify)

        session._warn("Not inside a Git repo")
        notify.assert_not_called()

        fake_loop.run_pending()
        notify.assert_called_once_with("Not inside a Git repo", logging.WARNING)
