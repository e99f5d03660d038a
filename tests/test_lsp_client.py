"""Tests for the backend LSP client."""

import io
import json
from pathlib import Path
from unittest.mock import Mock, patch

from language.lsp_client import (
    CANCEL_METHOD,
    GET_PROJECT_FILES_METHOD,
    METHOD_NOT_FOUND,
    PROJECT_FILE_METHOD,
    TRIGGER_METHOD,
    LSPClient,
    encode_message,
)


def decode_messages(data: bytes):
    """Split framed output back into JSON payloads."""
    messages = []
    stream = io.BytesIO(data)
    reader = LSPClient(["unused"], Path("."))
    reader.stdout = stream
    while True:
        message = reader._read_message()
        if message is None:
            break
        messages.append(message)
    return messages


def running_client():
    client = LSPClient(["backend"], Path("/project"))
    client.stdin = io.BytesIO()
    client.running = True
    return client


def test_lsp_client_initialization():
    client = LSPClient(["backend", "--stdio"], Path("/project"))
    assert client.cmd == ["backend", "--stdio"]
    assert not client.running


def test_encode_message_frames_utf8_length():
    payload = {"jsonrpc": "2.0", "method": "x", "params": {"text": "héllo"}}
    data = encode_message(payload)

    header, body = data.split(b"\r\n\r\n", 1)
    assert header == f"Content-Length: {len(body)}".encode("ascii")
    assert json.loads(body.decode("utf-8")) == payload


def test_read_message_handles_back_to_back_frames():
    data = encode_message({"id": 1, "result": None}) + encode_message({"method": "m", "params": {}})
    assert decode_messages(data) == [{"id": 1, "result": None}, {"method": "m", "params": {}}]


def test_trigger_completion_sends_position():
    client = running_client()
    callback = Mock()

    request_id = client.trigger_completion("file:///project/a.py", 3, 7, callback)

    [message] = decode_messages(client.stdin.getvalue())
    assert message["id"] == request_id
    assert message["method"] == TRIGGER_METHOD
    assert message["params"] == {
        "textDocument": {"uri": "file:///project/a.py"},
        "position": {"line": 3, "character": 7},
    }
    assert client.pending_requests[request_id] is callback
    assert client.last_request_id == request_id


def test_trigger_completion_when_stopped_returns_minus_one():
    client = LSPClient(["backend"], Path("/project"))
    assert client.trigger_completion("file:///a", 0, 0, Mock()) == -1


def test_write_failure_drops_callback():
    client = running_client()
    client.stdin = Mock()
    client.stdin.write.side_effect = BrokenPipeError("closed")

    assert client.trigger_completion("file:///a", 0, 0, Mock()) == -1
    assert client.pending_requests == {}


def test_response_routed_to_callback():
    client = running_client()
    callback = Mock()
    request_id = client.trigger_completion("file:///a", 0, 0, callback)

    client._handle_message({"jsonrpc": "2.0", "id": request_id, "result": {"text": "x"}})

    callback.assert_called_once_with(None, {"text": "x"})
    assert request_id not in client.pending_requests


def test_error_response_routed_to_callback():
    client = running_client()
    callback = Mock()
    request_id = client.trigger_completion("file:///a", 0, 0, callback)

    error = {"code": -32000, "message": "model overloaded"}
    client._handle_message({"jsonrpc": "2.0", "id": request_id, "error": error})

    callback.assert_called_once_with(error, None)


def test_notification_routed_to_handler():
    client = running_client()
    handler = Mock()
    client.on_notification("ghostText/virtualText", handler)

    client._handle_message({"jsonrpc": "2.0", "method": "ghostText/virtualText", "params": {"text": "x"}})

    handler.assert_called_once_with({"text": "x"})


def test_server_request_answered_with_handler_result():
    client = running_client()
    client.on_request(GET_PROJECT_FILES_METHOD, lambda params: [{"path": "a.py", "content": "x"}])

    client._handle_message({"jsonrpc": "2.0", "id": 9, "method": GET_PROJECT_FILES_METHOD, "params": {}})

    [response] = decode_messages(client.stdin.getvalue())
    assert response == {"jsonrpc": "2.0", "id": 9, "result": [{"path": "a.py", "content": "x"}]}


def test_unknown_server_request_gets_method_not_found():
    client = running_client()

    client._handle_message({"jsonrpc": "2.0", "id": 4, "method": "workspace/unknown"})

    [response] = decode_messages(client.stdin.getvalue())
    assert response["id"] == 4
    assert response["error"]["code"] == METHOD_NOT_FOUND


def test_cancel_and_project_file_notifications():
    client = running_client()

    client.cancel_completion()
    client.submit_project_file("src/a.py", "print(1)\n", "/project")

    cancel, project_file = decode_messages(client.stdin.getvalue())
    assert cancel == {"jsonrpc": "2.0", "method": CANCEL_METHOD, "params": {}}
    assert project_file["method"] == PROJECT_FILE_METHOD
    assert project_file["params"] == {"path": "src/a.py", "content": "print(1)\n", "root": "/project"}
    assert "id" not in project_file


def test_document_sync_notifications():
    client = running_client()

    client.did_open("file:///project/a.py", "python", "x = 1\n")
    client.did_change("file:///project/a.py", "x = 2\n", 2)
    client.did_close("file:///project/a.py")

    opened, changed, closed = decode_messages(client.stdin.getvalue())
    assert opened["params"]["textDocument"]["languageId"] == "python"
    assert changed["params"]["contentChanges"] == [{"text": "x = 2\n"}]
    assert changed["params"]["textDocument"]["version"] == 2
    assert closed["method"] == "textDocument/didClose"


def test_reader_fails_pending_requests_at_eof():
    client = running_client()
    callback = Mock()
    client.trigger_completion("file:///a", 0, 0, callback)
    client.stdout = io.BytesIO(b"")

    client._read_responses()

    assert not client.running
    error, result = callback.call_args[0]
    assert error["message"] == "backend unavailable"
    assert result is None


def test_start_failure_returns_false():
    client = LSPClient(["definitely-not-a-real-backend"], Path("."))
    with patch("language.lsp_client.subprocess.Popen", side_effect=FileNotFoundError("missing")):
        assert client.start() is False
    assert not client.running


def test_failing_handler_does_not_stop_the_reader():
    client = running_client()
    callback = Mock()
    client.next_id = 7
    client.trigger_completion("file:///a", 0, 0, callback)

    def broken_handler(params):
        return params.get("text")

    client.on_notification("ghostText/virtualText", broken_handler)
    client.stdout = io.BytesIO(
        encode_message({"jsonrpc": "2.0", "method": "ghostText/virtualText", "params": ["bad"]})
        + encode_message({"jsonrpc": "2.0", "id": 7, "result": {"text": "ok"}})
    )

    client._read_responses()

    callback.assert_called_once_with(None, {"text": "ok"})
    assert client.pending_requests == {}
