"""Agent process management.

ProcessRunner launches one external process per task and exposes its output
as a live stream of text chunks plus an exit code. Chunk boundaries are
whatever the pipe delivers; no attempt is made to reassemble lines.
"""

import asyncio
import codecs
import os
from collections.abc import AsyncIterator
from pathlib import Path

from autopilot.exceptions import ProcessSpawnError
from autopilot.logging import get_logger

logger = get_logger("autopilot.runner.process")

DEFAULT_CHUNK_SIZE = 4096
DEFAULT_BUFFER_CHUNKS = 64


class ProcessHandle:
    """A running agent process.

    stdout and stderr are pumped into one bounded queue. When the consumer
    stops reading (for example while an action waits for approval) the queue
    fills, the pumps stop draining the pipes and the child blocks on write.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        command: str,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        buffer_chunks: int = DEFAULT_BUFFER_CHUNKS,
    ):
        self.process = process
        self.command = command
        self.chunk_size = chunk_size
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=buffer_chunks)
        streams = [s for s in (process.stdout, process.stderr) if s is not None]
        self._pumps = [asyncio.create_task(self._pump(stream)) for stream in streams]
        self._closed = False

    @property
    def pid(self) -> int:
        """Process ID of the child."""
        return self.process.pid

    @property
    def returncode(self) -> int | None:
        """Exit code, or None while the process is running."""
        return self.process.returncode

    async def _pump(self, stream: asyncio.StreamReader) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                data = await stream.read(self.chunk_size)
                if not data:
                    break
                text = decoder.decode(data)
                if text:
                    await self._queue.put(text)
            tail = decoder.decode(b"", final=True)
            if tail:
                await self._queue.put(tail)
        finally:
            # End-of-stream marker; skipped when the pump is cancelled on terminate
            if not asyncio.current_task().cancelling():
                await self._queue.put(None)

    async def chunks(self) -> AsyncIterator[str]:
        """Yield output chunks until both streams are exhausted."""
        open_streams = len(self._pumps)
        while open_streams and not self._closed:
            item = await self._queue.get()
            if item is None:
                open_streams -= 1
                continue
            yield item

    def close(self) -> None:
        """Stop reading output and release a consumer blocked in ``chunks``.

        The process itself keeps running; use ``terminate`` to stop it.
        """
        if self._closed:
            return
        self._closed = True
        for pump in self._pumps:
            pump.cancel()
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    async def wait(self) -> int:
        """Wait for the process to exit.

        Returns:
            int: Exit code
        """
        return await self.process.wait()

    async def terminate(self, grace_seconds: float = 5.0) -> int | None:
        """Stop the process: SIGTERM first, SIGKILL after the grace period.

        Args:
            grace_seconds: How long to wait for a graceful exit

        Returns:
            int | None: Exit code if the process could be reaped
        """
        self.close()

        if self.process.returncode is not None:
            return self.process.returncode

        try:
            self.process.terminate()
        except ProcessLookupError:
            return self.process.returncode

        try:
            return await asyncio.wait_for(self.process.wait(), timeout=grace_seconds)
        except TimeoutError:
            logger.warning("Agent ignored SIGTERM, killing", pid=self.pid, command=self.command)
            try:
                self.process.kill()
            except ProcessLookupError:
                pass
            return await self.process.wait()


class ProcessRunner:
    """Spawns agent processes.

    Attributes:
        chunk_size: Maximum bytes read from a pipe at once
        buffer_chunks: Chunks buffered before the child is back-pressured
    """

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE, buffer_chunks: int = DEFAULT_BUFFER_CHUNKS):
        self.chunk_size = chunk_size
        self.buffer_chunks = buffer_chunks

    async def spawn(
        self,
        command: str,
        args: list[str],
        cwd: Path | str | None = None,
        env: dict[str, str] | None = None,
    ) -> ProcessHandle:
        """Start a process with piped output.

        Args:
            command: Executable to run
            args: Command line arguments
            cwd: Working directory
            env: Extra environment variables layered over the current ones

        Returns:
            ProcessHandle: Handle of the running process

        Raises:
            ProcessSpawnError: If the executable cannot be started
        """
        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *args,
                cwd=str(cwd) if cwd else None,
                env={**os.environ, **(env or {})},
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProcessSpawnError(command, str(e)) from e

        logger.info("Agent process started", command=command, pid=process.pid, cwd=str(cwd or os.getcwd()))
        return ProcessHandle(
            process,
            command,
            chunk_size=self.chunk_size,
            buffer_chunks=self.buffer_chunks,
        )
