"""
HTTP response caching for FastAPI routes.

Two behaviours, applied per route:

- read path: GET responses are served from the cache when present; on a miss
  the handler runs and a 2xx JSON body is stored before it is returned.
- write path: after a successful POST/PUT/PATCH/DELETE the configured entity
  types are invalidated.

Handlers are plain async callables ``handler(request)`` returning either a
Starlette ``Response`` or a JSON-serializable body. The response body is
captured from the handler's return value; nothing on the response object is
patched. A status or headers an endpoint sets on FastAPI's injected
``Response`` parameter are applied to the returned body before the 2xx check.

A read that started before a concurrent write's invalidation finished can
store pre-write data right after the invalidation. Staleness from that race
is bounded by the entity TTL.
"""

import functools
import inspect
import json
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence, Tuple, Union
from urllib.parse import quote, urlencode

from fastapi import Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from shared.logging import get_logger, set_cache_context
from .cache_service import CacheService
from .registry import EntityCacheRegistry

CACHEABLE_METHODS = frozenset({"GET"})
MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

CACHE_STATUS_HEADER = "X-Cache"
CACHE_KEY_HEADER = "X-Cache-Key"

Handler = Callable[[Request], Awaitable[Any]]


def _encode_pairs(pairs) -> str:
    return urlencode(sorted((str(name), str(value)) for name, value in pairs), quote_via=quote)


def build_cache_key(
    cache: CacheService,
    request: Request,
    entity_type: str,
    key_prefix: str = "",
) -> str:
    """Cache key for a request: ``{prefix}:{entity}:{encoded request parts}``.

    The path, query and route parameters are percent-encoded, so the tail
    never contains ``:`` or whitespace and distinct requests never share a
    key. Pairs are sorted, making argument order irrelevant.
    """
    tail = "|".join((
        quote(key_prefix, safe=""),
        quote(request.url.path, safe="/"),
        _encode_pairs(request.query_params.multi_items()),
        _encode_pairs(request.path_params.items()),
    ))
    return cache.generate_key(entity_type, tail)


def _is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


def _json_body(result: Any) -> Tuple[int, Optional[Any], Response]:
    """Split a handler result into (status, JSON body or None, response)."""
    if isinstance(result, Response):
        if not isinstance(result, JSONResponse):
            return result.status_code, None, result
        try:
            body = json.loads(result.body) if result.body else None
        except ValueError:
            body = None
        return result.status_code, body, result

    body = jsonable_encoder(result)
    return 200, body, JSONResponse(content=body)


class ResponseCacheMiddleware:
    """Route-level read-through caching and write invalidation."""

    def __init__(self, cache: CacheService, registry: EntityCacheRegistry):
        self.cache = cache
        self.registry = registry
        self.logger = get_logger("storefront.cache.middleware")

    async def serve_cached(
        self,
        request: Request,
        handler: Handler,
        entity_type: str,
        *,
        ttl: Optional[int] = None,
        skip_auth: bool = False,
        key_prefix: str = "",
    ) -> Any:
        """Read path. Only GET is cached; anything else runs the handler untouched."""
        if request.method not in CACHEABLE_METHODS:
            return await handler(request)

        if skip_auth and getattr(request.state, "user_info", None):
            return await handler(request)

        try:
            cache_key = build_cache_key(self.cache, request, entity_type, key_prefix)
            cached = await self.cache.get(cache_key)
        except Exception as exc:
            self.logger.error("Cache lookup failed, serving uncached", entity_type=entity_type, error=str(exc))
            return await handler(request)

        if cached is not None:
            set_cache_context(cache_key, "HIT")
            return JSONResponse(
                content=cached,
                headers={CACHE_STATUS_HEADER: "HIT", CACHE_KEY_HEADER: cache_key},
            )

        set_cache_context(cache_key, "MISS")
        status_code, body, response = _json_body(await handler(request))
        if not _is_success(status_code) or body is None:
            return response

        cache_ttl = ttl or self.registry.get_ttl(entity_type)
        if not await self.cache.set(cache_key, body, cache_ttl):
            self.logger.warning("Response not cached", entity_type=entity_type, key=cache_key)

        response.headers[CACHE_STATUS_HEADER] = "MISS"
        response.headers[CACHE_KEY_HEADER] = cache_key
        return response

    async def serve_invalidating(
        self,
        request: Request,
        handler: Handler,
        entity_types: Union[str, Sequence[str]],
        *,
        also_invalidate: Iterable[str] = (),
    ) -> Any:
        """Write path. Runs the handler, then invalidates on a 2xx mutation."""
        if request.method not in MUTATING_METHODS:
            return await handler(request)

        result = await handler(request)
        status_code = result.status_code if isinstance(result, Response) else 200
        if _is_success(status_code):
            await self.invalidate(_entity_list(entity_types, also_invalidate))
        return result

    async def serve(self, request: Request, handler: Handler, entity_type: str, **options) -> Any:
        """Dispatch to the read or write path by request method."""
        if request.method in CACHEABLE_METHODS:
            return await self.serve_cached(
                request,
                handler,
                entity_type,
                ttl=options.get("ttl"),
                skip_auth=options.get("skip_auth", False),
                key_prefix=options.get("key_prefix", ""),
            )
        return await self.serve_invalidating(
            request,
            handler,
            entity_type,
            also_invalidate=options.get("also_invalidate", ()),
        )

    async def invalidate(self, entity_types: Union[str, Sequence[str]]) -> int:
        """Invalidate entity types after a mutation. Errors are logged, never raised."""
        types = _entity_list(entity_types)
        total = 0
        for entity_type in types:
            try:
                total += await self.registry.invalidate(entity_type)
            except Exception as exc:
                self.logger.error("Cache invalidation failed", entity_type=entity_type, error=str(exc))

        self.logger.info("Invalidated cache", entity_types=types, keys=total)
        return total

    def cached(self, entity_type: str, *, ttl: Optional[int] = None, skip_auth: bool = False, key_prefix: str = ""):
        """Decorate a FastAPI endpoint with the read path."""
        def decorator(endpoint):
            return _wrap_endpoint(
                endpoint,
                lambda request, handler: self.serve_cached(
                    request, handler, entity_type, ttl=ttl, skip_auth=skip_auth, key_prefix=key_prefix
                ),
            )
        return decorator

    def invalidates(self, *entity_types: str, also_invalidate: Iterable[str] = ()):
        """Decorate a FastAPI endpoint with the write path."""
        also = tuple(also_invalidate)

        def decorator(endpoint):
            return _wrap_endpoint(
                endpoint,
                lambda request, handler: self.serve_invalidating(
                    request, handler, entity_types, also_invalidate=also
                ),
            )
        return decorator

    def cache_with_invalidation(self, entity_type: str, **options):
        """Decorate an endpoint registered for both reads and writes."""
        def decorator(endpoint):
            return _wrap_endpoint(
                endpoint,
                lambda request, handler: self.serve(request, handler, entity_type, **options),
            )
        return decorator


def _entity_list(entity_types: Union[str, Sequence[str]], also: Iterable[str] = ()) -> list:
    types = [entity_types] if isinstance(entity_types, str) else list(entity_types)
    for extra in also:
        if extra not in types:
            types.append(extra)
    return types


def _request_parameter(endpoint) -> str:
    for name, parameter in inspect.signature(endpoint).parameters.items():
        if parameter.annotation is Request:
            return name
    raise TypeError(f"{endpoint.__name__} must declare a 'Request' parameter to be cached")


def _response_parameter(endpoint) -> Optional[str]:
    for name, parameter in inspect.signature(endpoint).parameters.items():
        if parameter.annotation is Response:
            return name
    return None


def _apply_injected_response(result: Any, injected: Response) -> Any:
    """Carry a status or headers set on FastAPI's injected ``Response`` onto a plain body."""
    if isinstance(result, Response):
        return result
    response = JSONResponse(content=jsonable_encoder(result), status_code=injected.status_code or 200)
    response.headers.raw.extend(injected.headers.raw)
    return response


def _wrap_endpoint(endpoint, serve: Callable[[Request, Handler], Awaitable[Any]]):
    """Wrap an endpoint so FastAPI still sees its original signature."""
    request_param = _request_parameter(endpoint)
    response_param = _response_parameter(endpoint)

    @functools.wraps(endpoint)
    async def wrapper(*args, **kwargs):
        request = kwargs[request_param]

        async def handler(_request: Request) -> Any:
            if inspect.iscoroutinefunction(endpoint):
                result = await endpoint(*args, **kwargs)
            else:
                result = await run_in_threadpool(endpoint, *args, **kwargs)

            if response_param is not None:
                return _apply_injected_response(result, kwargs[response_param])
            return result

        return await serve(request, handler)

    return wrapper
