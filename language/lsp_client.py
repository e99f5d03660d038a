"""LSP client for the ghost-text completion backend."""

import json
import logging
import subprocess
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from core.utils import path_to_uri

logger = logging.getLogger(__name__)

TRIGGER_METHOD = "custom/triggerGhostText"
CANCEL_METHOD = "$/cancelGhostText"
PROJECT_FILE_METHOD = "custom/projectFile"
GET_PROJECT_FILES_METHOD = "custom/getProjectFiles"
VIRTUAL_TEXT_METHOD = "ghostText/virtualText"

METHOD_NOT_FOUND = -32601
INTERNAL_ERROR = -32603

ResponseCallback = Callable[[Optional[Dict[str, Any]], Any], None]


def encode_message(payload: Dict[str, Any]) -> bytes:
    """Frame a JSON-RPC payload with its Content-Length header."""
    body = json.dumps(payload).encode("utf-8")
    return f"Content-Length: {len(body)}\r\n\r\n".encode("ascii") + body


class LSPClient:
    """Manages a stdio LSP server process."""

    def __init__(self, cmd: List[str], root: Path, name: str = "llmcoder"):
        self.cmd = list(cmd)
        self.root = root
        self.name = name
        self.process: Optional[subprocess.Popen] = None
        self.stdin: Optional[Any] = None
        self.stdout: Optional[Any] = None
        self.next_id = 1
        self.pending_requests: Dict[int, ResponseCallback] = {}
        self.notification_handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {}
        self.request_handlers: Dict[str, Callable[[Dict[str, Any]], Any]] = {}
        self.running = False
        self.thread: Optional[threading.Thread] = None
        self.last_request_id = 0
        self._lock = threading.Lock()

    def on_notification(self, method: str, handler: Callable[[Dict[str, Any]], None]) -> None:
        """Register a handler for a server notification."""
        self.notification_handlers[method] = handler

    def on_request(self, method: str, handler: Callable[[Dict[str, Any]], Any]) -> None:
        """Register a handler answering a server-to-client request."""
        self.request_handlers[method] = handler

    def start(self) -> bool:
        """Start the LSP server."""
        if self.running:
            return True

        if not self.cmd:
            logger.warning(f"No command configured for {self.name}")
            return False

        try:
            self.process = subprocess.Popen(
                self.cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                cwd=str(self.root),
            )
        except (OSError, ValueError) as e:
            logger.error(f"Failed to start LSP server {self.name}: {e}")
            return False

        self.stdin = self.process.stdin
        self.stdout = self.process.stdout
        self.running = True

        # Start reader thread
        self.thread = threading.Thread(target=self._read_responses, daemon=True, name=f"{self.name}-reader")
        self.thread.start()

        self._initialize()
        return True

    def stop(self):
        """Stop the LSP server."""
        if self.running:
            self._send_request("shutdown", None)
            self._send_notification("exit", None)
        self.running = False
        if self.process:
            try:
                self.process.terminate()
                self.process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self.process.kill()
            self.process = None
        self.pending_requests.clear()

    def _initialize(self):
        """Send initialize request."""
        params = {
            "processId": None,
            "rootPath": str(self.root),
            "rootUri": path_to_uri(str(self.root)),
            "capabilities": {
                "textDocument": {
                    "synchronization": {"didSave": False, "dynamicRegistration": False},
                },
                "workspace": {"workspaceFolders": True},
            },
            "workspaceFolders": [{"uri": path_to_uri(str(self.root)), "name": self.root.name}],
        }
        self._send_request("initialize", params)

        # Send initialized notification
        self._send_notification("initialized", {})

    def did_open(self, uri: str, language_id: str, text: str, version: int = 1):
        """Notify server that a document was opened."""
        params = {
            "textDocument": {
                "uri": uri,
                "languageId": language_id,
                "version": version,
                "text": text,
            }
        }
        self._send_notification("textDocument/didOpen", params)

    def did_change(self, uri: str, text: str, version: int):
        """Notify server that a document changed (full sync)."""
        params = {
            "textDocument": {"uri": uri, "version": version},
            "contentChanges": [{"text": text}],
        }
        self._send_notification("textDocument/didChange", params)

    def did_close(self, uri: str):
        """Notify server that a document was closed."""
        self._send_notification("textDocument/didClose", {"textDocument": {"uri": uri}})

    def trigger_completion(self, uri: str, line: int, character: int, callback: ResponseCallback) -> int:
        """Request a ghost-text completion at a position; returns the request id or -1."""
        params = {
            "textDocument": {"uri": uri},
            "position": {"line": line, "character": character},
        }
        return self._send_request(TRIGGER_METHOD, params, callback)

    def cancel_completion(self):
        """Ask the server to drop the in-flight completion."""
        self._send_notification(CANCEL_METHOD, {})

    def submit_project_file(self, path: str, content: str, root: str):
        """Send one project file to prime the server's context."""
        self._send_notification(PROJECT_FILE_METHOD, {"path": path, "content": content, "root": root})

    def _send_request(self, method: str, params: Any, callback: Optional[ResponseCallback] = None) -> int:
        """Send a request and return the ID, or -1 when it could not be written."""
        if not self.running or not self.stdin:
            return -1

        with self._lock:
            request_id = self.next_id
            self.next_id += 1
            if callback is not None:
                self.pending_requests[request_id] = callback

            request = {
                "jsonrpc": "2.0",
                "id": request_id,
                "method": method,
                "params": params,
            }
            if not self._write(request):
                self.pending_requests.pop(request_id, None)
                return -1
            self.last_request_id = request_id

        return request_id

    def _send_notification(self, method: str, params: Any):
        """Send a notification."""
        if not self.running or not self.stdin:
            return

        notification = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
        }
        with self._lock:
            self._write(notification)

    def _send_response(self, request_id: Any, result: Any = None, error: Optional[Dict[str, Any]] = None):
        """Answer a server-to-client request."""
        if not self.running or not self.stdin:
            return

        response: Dict[str, Any] = {"jsonrpc": "2.0", "id": request_id}
        if error is not None:
            response["error"] = error
        else:
            response["result"] = result
        with self._lock:
            self._write(response)

    def _write(self, payload: Dict[str, Any]) -> bool:
        """Write one framed message; the caller holds the lock."""
        try:
            self.stdin.write(encode_message(payload))
            self.stdin.flush()
            return True
        except (OSError, ValueError) as e:
            logger.error(f"Failed to send {payload.get('method', 'response')}: {e}")
            return False

    def _read_message(self) -> Optional[Dict[str, Any]]:
        """Read one framed message; None at end of stream."""
        content_length = 0
        while True:
            line = self.stdout.readline()
            if not line:
                return None
            line = line.strip()
            if not line:
                break
            name, _, value = line.decode("ascii", errors="replace").partition(":")
            if name.strip().lower() == "content-length":
                content_length = int(value.strip())

        if content_length <= 0:
            return {}

        body = self.stdout.read(content_length)
        if len(body) < content_length:
            return None
        return json.loads(body.decode("utf-8"))

    def _read_responses(self):
        """Read responses from the server in a separate thread."""
        if not self.stdout:
            return

        while self.running:
            try:
                message = self._read_message()
            except json.JSONDecodeError as e:
                logger.error(f"Invalid JSON from {self.name}: {e}")
                continue
            except (OSError, ValueError) as e:
                logger.error(f"Error reading from LSP server {self.name}: {e}")
                break

            if message is None:
                break
            if not message:
                continue
            try:
                self._handle_message(message)
            except Exception:
                logger.exception(f"Failed to handle message from {self.name}")

        if self.running:
            logger.warning(f"LSP server {self.name} closed its output")
            self.running = False
        self._fail_pending({"code": INTERNAL_ERROR, "message": "backend unavailable"})

    def _fail_pending(self, error: Dict[str, Any]):
        """Complete every outstanding request with an error."""
        with self._lock:
            pending = list(self.pending_requests.values())
            self.pending_requests.clear()
        for callback in pending:
            callback(error, None)

    def _handle_message(self, message: Dict[str, Any]):
        """Route a message from the server."""
        if "method" in message and "id" in message:
            self._handle_server_request(message["id"], message["method"], message.get("params") or {})
        elif "method" in message:
            self._handle_notification(message["method"], message.get("params") or {})
        elif "id" in message:
            # Response to request
            with self._lock:
                callback = self.pending_requests.pop(message["id"], None)
            if callback is not None:
                callback(message.get("error"), message.get("result"))

    def _handle_notification(self, method: str, params: Dict[str, Any]):
        """Handle a notification from the server."""
        handler = self.notification_handlers.get(method)
        if handler is None:
            logger.debug(f"Unhandled notification {method}")
            return
        handler(params)

    def _handle_server_request(self, request_id: Any, method: str, params: Dict[str, Any]):
        """Answer a request sent by the server."""
        handler = self.request_handlers.get(method)
        if handler is None:
            self._send_response(request_id, error={"code": METHOD_NOT_FOUND, "message": f"Unhandled method {method}"})
            return
        try:
            result = handler(params)
        except Exception as e:
            logger.exception(f"Handler for {method} failed")
            self._send_response(request_id, error={"code": INTERNAL_ERROR, "message": str(e)})
            return
        self._send_response(request_id, result=result)
