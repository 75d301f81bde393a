"""Asynchronous request pipeline for the Relay networking layer.

``Server`` represents one backend. It owns a configuration container and runs
every call through assemble -> execute -> validate -> decode, checking for
cancellation between stages and routing failures to the error mapper.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Mapping, TypeVar

from .assembly import RequestDescriptor, assemble
from .config import ServerConfig
from .errors import Cancelled, TransportCancelled
from .handling import Catcher, decode, map_error, validate
from .lifecycle import CancellationToken, ConfigurationContainer, Generation
from .method import Method
from .reachability import Reachability
from .reports import reporter_for
from .send import Send
from .take import Take
from .transport import ResponseMeta
from .types import Err, Ok, Result, Silent

ResponseValue = TypeVar("ResponseValue")


class Server:
    """Coordinates configuration changes with in-flight requests.

    Each call captures the current configuration generation when it starts
    and runs against it until completion. Replacing the configuration cancels
    calls still bound to the previous generation; they finish as silent
    cancellations.
    """

    def __init__(
        self,
        config: ServerConfig | ConfigurationContainer,
        *,
        reachability: Reachability | None = None,
    ) -> None:
        """Create a new Server.

        Args:
            config: Initial configuration, or an existing container to share.
            reachability: Optional externally fed network status.
        """
        if isinstance(config, ConfigurationContainer):
            self._container = config
        else:
            self._container = ConfigurationContainer(config)
        self.reachability = reachability or Reachability()

    @property
    def container(self) -> ConfigurationContainer:
        return self._container

    async def get_config(self) -> ServerConfig:
        return await self._container.get()

    async def set_config(self, config: ServerConfig) -> asyncio.Task[None]:
        """Replace the configuration; see ``ConfigurationContainer.set``."""
        return await self._container.set(config)

    async def aclose(self) -> None:
        await self._container.aclose()

    async def __aenter__(self) -> Server:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _execute(
        self,
        generation: Generation,
        descriptor: RequestDescriptor,
        token: CancellationToken | None,
    ) -> tuple[bytes, ResponseMeta]:
        """Run the transport, interrupting it if ``token`` fires."""
        task = asyncio.ensure_future(generation.transport.execute(descriptor))
        unregister = token.register(task.cancel) if token is not None else None
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if (
                token is not None
                and token.cancelled
                and (current is None or not current.cancelling())
            ):
                raise Cancelled() from None
            raise
        finally:
            if unregister is not None:
                unregister()

    async def _pipeline(
        self,
        generation: Generation,
        method: Method | str,
        path: str,
        *,
        base: str | None,
        timeout: float | None,
        headers: Mapping[str, str] | None,
        query: Mapping[str, str] | None,
        send: Send,
        take: Take[ResponseValue],
        catcher: Catcher[ResponseValue] | None,
        token: CancellationToken | None,
    ) -> ResponseValue:
        config = generation.config
        reporter = reporter_for(config.reports)

        def checkpoint() -> None:
            generation.check_cancellation(token)

        try:
            descriptor = await assemble(
                config,
                method,
                path,
                base=base,
                timeout=timeout,
                headers=headers,
                query=query,
                send=send,
                take=take,
            )
            checkpoint()
            data, response = await self._execute(generation, descriptor, token)
            checkpoint()
            validate(config, take, descriptor, response, data, reporter)
            checkpoint()
            value = await decode(
                config, take, descriptor, response, data, reporter
            )
            checkpoint()
            return value
        except Cancelled:
            raise
        except Exception as exc:
            try:
                value = await map_error(config, catcher, exc)
            except Cancelled:
                raise
            except Exception:
                checkpoint()
                raise
            checkpoint()
            return value

    async def request(
        self,
        method: Method | str,
        path: str,
        *,
        base: str | None = None,
        timeout: float | None = None,
        headers: Mapping[str, str] | None = None,
        query: Mapping[str, str] | None = None,
        send: Send | None = None,
        take: Take[ResponseValue] | None = None,
        catcher: Catcher[ResponseValue] | None = None,
        token: CancellationToken | None = None,
    ) -> ResponseValue:
        """Perform one request.

        Args:
            method: HTTP method.
            path: Request path, resolved against the base URL.
            base: Overrides the configuration's base URL when provided.
            timeout: Overrides the configuration's timeout when provided.
            headers: Call-site headers, merged over configuration headers.
            query: Call-site query items, merged over configuration query.
            send: Outgoing payload strategy. Defaults to ``Send.void()``.
            take: Expected response strategy. Defaults to ``Take.void()``.
            catcher: Overrides the configuration's catcher. May return a
                substitute value, raise a replacement error or raise
                ``Cancelled``.
            token: Caller cancellation token.

        Returns:
            The decoded value.

        Raises:
            Cancelled: The call ended as a silent cancellation.
            RelayError: A reported failure (or whatever a catcher raised).
        """
        generation = await self._container.snapshot()
        reporter = reporter_for(generation.config.reports)
        start = time.monotonic()
        reporter.phase("start", path, 0.0)

        try:
            await generation.checkin()
        except Cancelled:
            reporter.phase("cancel", path, time.monotonic() - start)
            raise

        try:
            value = await self._pipeline(
                generation,
                method,
                path,
                base=base,
                timeout=timeout,
                headers=headers,
                query=query,
                send=send or Send.void(),
                take=take or Take.void(),
                catcher=catcher,
                token=token,
            )
        except (Cancelled, asyncio.CancelledError):
            reporter.phase("cancel", path, time.monotonic() - start)
            raise
        except Exception as exc:
            reporter.phase("error", path, time.monotonic() - start, str(exc))
            raise
        finally:
            generation.checkout()

        reporter.phase("done", path, time.monotonic() - start)
        return value

    async def raw(
        self,
        descriptor: RequestDescriptor,
        *,
        token: CancellationToken | None = None,
    ) -> tuple[bytes, ResponseMeta]:
        """Run a caller-built request on the current transport.

        The response is returned as received: no validation, decoding or
        error mapping is applied.

        Raises:
            Cancelled: The configuration was replaced or ``token`` fired.
            TransportError: The transport failed.
        """
        generation = await self._container.snapshot()
        await generation.checkin()
        try:
            generation.check_cancellation(token)
            try:
                result = await self._execute(generation, descriptor, token)
            except TransportCancelled:
                generation.check_cancellation(token)
                raise
            generation.check_cancellation(token)
            return result
        finally:
            generation.checkout()

    async def call(
        self,
        method: Method | str,
        path: str,
        **kwargs: Any,
    ) -> Result[Any]:
        """Perform one request and return its outcome instead of raising.

        Accepts the same keyword arguments as ``request``.
        """
        meta: dict[str, Any] = {
            "method": str(getattr(method, "value", method)),
            "path": path,
        }
        start = time.monotonic()
        try:
            value = await self.request(method, path, **kwargs)
        except Cancelled:
            meta["elapsed_s"] = time.monotonic() - start
            return Silent(meta=meta)
        except Exception as exc:
            meta["elapsed_s"] = time.monotonic() - start
            meta["final_error"] = type(exc).__name__
            return Err(exc, meta=meta)
        meta["elapsed_s"] = time.monotonic() - start
        return Ok(value, meta=meta)
