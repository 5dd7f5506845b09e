import asyncio
import logging
from urllib.parse import unquote, urlsplit

import aiohttp

from metricservice.exceptions import DeliveryFailure, UnsupportedScheme

logger = logging.getLogger(__name__)

FILE_SCHEMES = frozenset({'file'})
HTTP_SCHEMES = frozenset({'http', 'https'})


def _append_line(path: str, payload: str) -> None:
    with open(path, 'a', encoding='utf-8') as f:
        f.write(payload)
        f.write('\n')


class SinkDispatcher:
    def __init__(self) -> None:
        self._session: aiohttp.ClientSession | None = None

    async def start(self) -> None:
        if self._session is not None:
            logger.debug('Sink dispatcher already started')
            return
        self._get_session()
        logger.info('Sink dispatcher started')

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session

    async def stop(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None
        logger.info('Sink dispatcher stopped')

    async def dispatch(
        self,
        destination: str,
        payload: str,
        timeout: float,
        content_type: str = 'application/json',
    ) -> None:
        url = urlsplit(destination)
        scheme = url.scheme.lower()
        if scheme in FILE_SCHEMES:
            await self._write_file(unquote(url.path), payload)
        elif scheme in HTTP_SCHEMES:
            await self._post(destination, payload, timeout, content_type)
        else:
            raise UnsupportedScheme(scheme)

    async def _write_file(self, path: str, payload: str) -> None:
        try:
            await asyncio.to_thread(_append_line, path, payload)
        except OSError as e:
            raise DeliveryFailure(f'Failed to write metrics to {path}: {e}') from e
        logger.debug(
            'Metrics written to file', extra={'path': path, 'size': len(payload)}
        )

    async def _post(
        self, url: str, payload: str, timeout: float, content_type: str
    ) -> None:
        # aiohttp reads a zero total as unbounded; here it expires immediately.
        if timeout <= 0:
            raise DeliveryFailure(
                f'Timed out posting metrics to {url} after {timeout}s'
            )
        try:
            async with self._get_session().post(
                url,
                data=payload.encode('utf-8'),
                headers={'Content-Type': content_type},
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                response.raise_for_status()
                status = response.status
        except aiohttp.ClientResponseError as e:
            raise DeliveryFailure(f'Collector at {url} answered {e.status}') from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DeliveryFailure(f'Failed to post metrics to {url}: {e!r}') from e
        logger.debug('Metrics posted', extra={'url': url, 'status': status})
