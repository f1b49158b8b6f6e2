"""
Session backed by a system ssh child process.

The child talks to us over plain pipes. ssh is started with -tt so the
remote side still gets a PTY; for password logins the secret is fed by
sshpass (via environment) or by a short-lived expect script.
"""

from __future__ import annotations
import os
import queue
import signal
import subprocess
import threading
import logging
from enum import Enum
from typing import Optional, IO

from .base import (
    Session, SessionState, SessionEvent, StreamKind,
    DataReceived, StateChanged, EventHandler, CONNECTABLE_STATES,
)
from .command import (
    IS_WINDOWS, find_binary, build_ssh_command, build_sshpass_command,
    build_expect_command, build_environment, describe_command,
)
from .errors import (
    SessionError, SpawnFailed, AuthMissing, RemoteAuthRejected,
    LoginTimeout, UnexpectedExit,
)
from .keepalive import KeepaliveTask
from .login_script import (
    CredentialScriptBuilder, TempCredentialScript,
    AUTH_REJECTED_EXIT, LOGIN_TIMEOUT_EXIT,
)
from ..config import EngineSettings
from ..connection.profile import SessionConfig, AuthMethod
from ..vault.store import SecretStore

logger = logging.getLogger(__name__)

# sshpass exit status for a rejected password
SSHPASS_AUTH_EXIT = 5


class LaunchMode(Enum):
    """How the child authenticates."""
    DIRECT = "ssh"
    SSHPASS = "sshpass"
    EXPECT = "expect"


class _Launch:
    """Everything needed to spawn one attempt."""

    def __init__(self, cmd: list[str], env: dict, mode: LaunchMode,
                 script: Optional[TempCredentialScript] = None):
        self.cmd = cmd
        self.env = env
        self.mode = mode
        self.script = script


class ProcessSession(Session):
    """
    One remote shell in one child process.

    All public methods return immediately. Spawning, reading, writing and
    waiting happen on worker threads, and every outcome (including
    failures) is reported as a StateChanged event.

    Usage:
        session = ProcessSession(secret_store=store)
        session.set_event_handler(on_event)
        session.connect(SessionConfig.password_auth("router1", "admin"))
        session.send(b"show version\\r")
        ...
        session.disconnect()
    """

    def __init__(
        self,
        secret_store: Optional[SecretStore] = None,
        settings: Optional[EngineSettings] = None,
        script_builder: Optional[CredentialScriptBuilder] = None,
    ):
        self.settings = settings or EngineSettings()
        self._secret_store = secret_store
        self._script_builder = script_builder or CredentialScriptBuilder(self.settings)

        # Guards state, attempt and every process handle below
        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._attempt = 0
        self._config: Optional[SessionConfig] = None
        self._event_handler: Optional[EventHandler] = None

        self._process: Optional[subprocess.Popen] = None
        self._mode: Optional[LaunchMode] = None
        self._script: Optional[TempCredentialScript] = None
        self._keepalive: Optional[KeepaliveTask] = None
        self._write_queue: Optional[queue.Queue] = None

        self._cols = 80
        self._rows = 24
        self._last_error: Optional[SessionError] = None
        self._exit_code: Optional[int] = None

        self._closed = threading.Event()
        self._closed.set()

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def is_connected(self) -> bool:
        return self.state == SessionState.CONNECTED

    @property
    def config(self) -> Optional[SessionConfig]:
        return self._config

    @property
    def last_error(self) -> Optional[SessionError]:
        """Error attached to the last FAILED/DISCONNECTED transition."""
        return self._last_error

    @property
    def exit_code(self) -> Optional[int]:
        """Exit status of the last child, once it has been reaped."""
        return self._exit_code

    @property
    def pid(self) -> Optional[int]:
        with self._lock:
            return self._process.pid if self._process else None

    @property
    def geometry(self) -> tuple[int, int]:
        with self._lock:
            return self._cols, self._rows

    def set_event_handler(self, handler: Optional[EventHandler]) -> None:
        """Set callback for session events. Called from worker threads."""
        self._event_handler = handler

    def wait_closed(self, timeout: float = None) -> bool:
        """Block until the session is no longer connecting or connected."""
        return self._closed.wait(timeout)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def connect(self, config: SessionConfig) -> None:
        """Start a new attempt. Ignored unless idle, disconnected or failed."""
        with self._lock:
            if self._state not in CONNECTABLE_STATES:
                logger.warning(f"Cannot connect from state {self._state.name}")
                return
            self._attempt += 1
            attempt = self._attempt
            self._config = config
            self._cols = config.terminal_cols
            self._rows = config.terminal_rows
            self._last_error = None
            self._exit_code = None
            self._mode = None
            self._closed.clear()
            old_state = self._state
            self._state = SessionState.CONNECTING

        self._announce(old_state, SessionState.CONNECTING, f"Connecting to {config.display_description}")

        thread = threading.Thread(
            target=self._connect_thread,
            args=(config, attempt),
            name=f"termlink-session-{config.session_id[:8]}",
            daemon=True,
        )
        thread.start()

    def disconnect(self) -> None:
        """Force the session down. A no-op once disconnected."""
        with self._lock:
            attempt = self._attempt
            active = self._state in (SessionState.CONNECTING, SessionState.CONNECTED)
        if active:
            logger.info("Disconnecting...")
        self._terminate(attempt, message="User disconnected")

    def send(self, data: bytes) -> None:
        """Queue bytes for the child's stdin. Dropped unless connected."""
        if isinstance(data, str):
            data = data.encode('utf-8')
        if not data:
            return
        with self._lock:
            if self._state != SessionState.CONNECTED or self._write_queue is None:
                logger.debug(f"Dropping {len(data)} bytes, session is {self._state.name}")
                return
            self._write_queue.put(bytes(data))

    def close_input(self) -> None:
        """
        Close the child's stdin once queued writes are flushed.

        The session stays CONNECTED until the child exits on its own;
        later sends are dropped.
        """
        with self._lock:
            if self._state != SessionState.CONNECTED or self._write_queue is None:
                return
            write_queue, self._write_queue = self._write_queue, None
        write_queue.put(None)

    def resize(self, cols: int, rows: int) -> None:
        """
        Store the new geometry and tell the remote shell.

        There is no resize channel over pipes, so this writes an stty
        command to the shell. Advisory only.
        """
        if cols <= 0 or rows <= 0:
            return
        with self._lock:
            self._cols = cols
            self._rows = rows
            if self._state == SessionState.CONNECTED and self._write_queue is not None:
                self._write_queue.put(f"stty cols {cols} rows {rows}\r".encode('ascii'))

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def _emit(self, event: SessionEvent) -> None:
        """Emit event to handler."""
        handler = self._event_handler
        if handler:
            try:
                handler(event)
            except Exception as e:
                logger.exception(f"Event handler error: {e}")

    def _announce(
        self,
        old_state: SessionState,
        new_state: SessionState,
        message: str = "",
        error: Optional[SessionError] = None,
        exit_code: Optional[int] = None,
    ) -> None:
        """Log and emit a transition that has already been applied."""
        logger.info(f"Session state: {old_state.name} -> {new_state.name} {message}")
        self._emit(StateChanged(old_state, new_state, message, error, exit_code))

    # -------------------------------------------------------------------------
    # Connect path
    # -------------------------------------------------------------------------

    def _connect_thread(self, config: SessionConfig, attempt: int) -> None:
        """Resolve credentials, spawn, then watch the child until it exits."""
        try:
            launch = self._prepare(config)
        except SessionError as e:
            self._fail(attempt, e)
            return
        except Exception as e:
            logger.exception("Connection setup failed")
            self._fail(attempt, SessionError(str(e)))
            return

        logger.info(f"Session command: {describe_command(launch.cmd)}")

        try:
            proc = subprocess.Popen(
                launch.cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                bufsize=0,
                env=launch.env,
                start_new_session=not IS_WINDOWS,
            )
        except OSError as e:
            if launch.script:
                launch.script.remove()
            self._fail(attempt, SpawnFailed(f"Failed to start {launch.cmd[0]}: {e}", e))
            return

        write_queue: queue.Queue = queue.Queue()

        with self._lock:
            current = attempt == self._attempt and self._state == SessionState.CONNECTING
            if current:
                self._process = proc
                self._mode = launch.mode
                self._script = launch.script
                self._write_queue = write_queue
                self._state = SessionState.CONNECTED
                self._keepalive = self._make_keepalive(attempt)
                if self._keepalive:
                    self._keepalive.start()

        if not current:
            # Disconnected (or superseded) while we were spawning
            logger.debug(f"Discarding stale process {proc.pid}")
            self._close_pipes(proc)
            self._kill_process(proc)
            if launch.script:
                launch.script.remove()
            return

        self._announce(SessionState.CONNECTING, SessionState.CONNECTED, f"Process {proc.pid} started")

        readers = [
            threading.Thread(
                target=self._read_loop, args=(proc.stdout, StreamKind.STDOUT, attempt),
                name="termlink-stdout", daemon=True,
            ),
            threading.Thread(
                target=self._read_loop, args=(proc.stderr, StreamKind.STDERR, attempt),
                name="termlink-stderr", daemon=True,
            ),
        ]
        writer = threading.Thread(
            target=self._write_loop, args=(proc.stdin, write_queue),
            name="termlink-stdin", daemon=True,
        )
        for t in readers:
            t.start()
        writer.start()

        exit_code = proc.wait()
        logger.info(f"Process {proc.pid} exited with code {exit_code}")

        for t in readers:
            t.join(self.settings.terminate_grace)
        self._close_pipes(proc)

        with self._lock:
            if attempt == self._attempt:
                self._exit_code = exit_code
        self._terminate(attempt, exit_code=exit_code)

    def _prepare(self, config: SessionConfig) -> _Launch:
        """
        Pick the launch mode and build argv plus environment.

        Raises:
            AuthMissing: password auth with no stored secret
            SpawnFailed: a required binary is missing
            ScriptCreationFailed: the login script could not be written
        """
        s = self.settings

        ssh_path = find_binary(s.ssh_binary)
        if not ssh_path:
            raise SpawnFailed("SSH not found. Please install OpenSSH.")

        if config.auth_method == AuthMethod.PUBLIC_KEY:
            cmd = build_ssh_command(config, s, ssh_path)
            env = build_environment(config, s, self._cols, self._rows)
            return _Launch(cmd, env, LaunchMode.DIRECT)

        secret = self._resolve_secret(config)
        if not secret:
            raise AuthMissing(f"No password available for {config.target}")

        sshpass_path = find_binary(s.sshpass_binary) if s.use_sshpass else None
        if sshpass_path:
            cmd = build_sshpass_command(config, s, sshpass_path, ssh_path)
            env = build_environment(config, s, self._cols, self._rows, {'SSHPASS': secret})
            return _Launch(cmd, env, LaunchMode.SSHPASS)

        expect_path = find_binary(s.expect_binary)
        if not expect_path:
            raise SpawnFailed("Neither sshpass nor expect found. Install one for password logins.")

        script = self._script_builder.build(config, secret, ssh_path)
        cmd = build_expect_command(expect_path, str(script.path))
        env = build_environment(config, s, self._cols, self._rows)
        return _Launch(cmd, env, LaunchMode.EXPECT, script)

    def _resolve_secret(self, config: SessionConfig) -> Optional[str]:
        if self._secret_store is None:
            return None
        return self._secret_store.get(config.session_id)

    def _fail(self, attempt: int, error: SessionError) -> None:
        """CONNECTING -> FAILED for the given attempt."""
        with self._lock:
            if attempt != self._attempt or self._state != SessionState.CONNECTING:
                logger.debug(f"Ignoring failure of stale attempt: {error}")
                return
            self._state = SessionState.FAILED
            self._last_error = error

        self._announce(SessionState.CONNECTING, SessionState.FAILED, error.message, error=error)
        self._closed.set()

    # -------------------------------------------------------------------------
    # I/O threads
    # -------------------------------------------------------------------------

    def _read_loop(self, pipe: IO[bytes], stream: StreamKind, attempt: int) -> None:
        """Read one child pipe until EOF."""
        chunk_size = self.settings.read_chunk_size
        try:
            while True:
                data = pipe.read(chunk_size)
                if not data:
                    break
                if attempt != self._attempt:
                    break
                self._emit(DataReceived(data, stream))
        except (OSError, ValueError) as e:
            logger.debug(f"{stream.value} reader stopped: {e}")

    def _write_loop(self, pipe: IO[bytes], write_queue: queue.Queue) -> None:
        """Drain queued writes into the child's stdin. None stops the loop."""
        try:
            while True:
                data = write_queue.get()
                if data is None:
                    break
                view = memoryview(data)
                while view:
                    written = pipe.write(view)
                    view = view[written or 0:]
        except (OSError, ValueError) as e:
            logger.debug(f"stdin writer stopped: {e}")
        finally:
            try:
                pipe.close()
            except OSError:
                pass

    def _make_keepalive(self, attempt: int) -> Optional[KeepaliveTask]:
        s = self.settings
        if s.keepalive_interval <= 0 or not s.keepalive_payload:
            return None
        payload = s.keepalive_payload.encode('utf-8')

        def fire() -> None:
            with self._lock:
                if (attempt != self._attempt
                        or self._state != SessionState.CONNECTED
                        or self._write_queue is None):
                    return
                self._write_queue.put(payload)

        return KeepaliveTask(s.keepalive_interval, fire, name="termlink-keepalive")

    # -------------------------------------------------------------------------
    # Termination
    # -------------------------------------------------------------------------

    def _terminate(self, attempt: int, exit_code: Optional[int] = None, message: str = "") -> bool:
        """
        The single transition into DISCONNECTED.

        Reached from disconnect() and from the watcher when the child exits.
        Whichever arrives first does the cleanup; later calls return False.
        """
        with self._lock:
            if attempt != self._attempt or self._state not in (
                SessionState.CONNECTING, SessionState.CONNECTED
            ):
                return False

            old_state = self._state
            self._state = SessionState.DISCONNECTED

            proc, self._process = self._process, None
            script, self._script = self._script, None
            keepalive, self._keepalive = self._keepalive, None
            write_queue, self._write_queue = self._write_queue, None

            error = self._error_for_exit(exit_code, self._mode) if exit_code is not None else None
            self._last_error = error

        if keepalive:
            keepalive.stop()
        if write_queue is not None:
            write_queue.put(None)
        if proc is not None:
            self._kill_process(proc)
        if script is not None:
            script.remove()

        if not message:
            if error is not None:
                message = error.message
            elif exit_code == 0:
                message = "Connection closed"
            else:
                message = f"Process exited with code {exit_code}"

        self._announce(old_state, SessionState.DISCONNECTED, message, error=error, exit_code=exit_code)
        self._closed.set()
        return True

    @staticmethod
    def _error_for_exit(exit_code: int, mode: Optional[LaunchMode]) -> Optional[SessionError]:
        """Map a child exit status to the reason attached to DISCONNECTED."""
        if exit_code == 0:
            return None
        if mode == LaunchMode.EXPECT:
            if exit_code == AUTH_REJECTED_EXIT:
                return RemoteAuthRejected("Authentication rejected by remote host")
            if exit_code == LOGIN_TIMEOUT_EXIT:
                return LoginTimeout("Timed out waiting for login prompt")
        if mode == LaunchMode.SSHPASS and exit_code == SSHPASS_AUTH_EXIT:
            return RemoteAuthRejected("Authentication rejected by remote host")
        return UnexpectedExit(exit_code)

    def _kill_process(self, proc: subprocess.Popen) -> None:
        """SIGTERM the child's process group, SIGKILL after the grace period."""
        if proc.poll() is not None:
            return

        self._signal(proc, signal.SIGTERM)

        def escalate() -> None:
            try:
                proc.wait(timeout=self.settings.terminate_grace)
            except subprocess.TimeoutExpired:
                logger.debug(f"Process {proc.pid} ignored SIGTERM, killing")
                self._signal(proc, signal.SIGKILL if not IS_WINDOWS else signal.SIGTERM)

        threading.Thread(target=escalate, name="termlink-reaper", daemon=True).start()

    @staticmethod
    def _signal(proc: subprocess.Popen, sig: int) -> None:
        try:
            if IS_WINDOWS:
                proc.kill()
            else:
                os.killpg(proc.pid, sig)
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.debug(f"Failed to signal process {proc.pid}: {e}")

    @staticmethod
    def _close_pipes(proc: subprocess.Popen) -> None:
        for pipe in (proc.stdin, proc.stdout, proc.stderr):
            if pipe is None:
                continue
            try:
                pipe.close()
            except OSError as e:
                logger.debug(f"Cleanup error: {e}")
