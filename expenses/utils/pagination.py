"""Helpers for paginating purchase listings."""

from __future__ import annotations

from typing import Dict, List, Tuple, Union

from flask import request

PAGINATION_SIZES: Tuple[int, ...] = (20, 50, 100, 250)


def get_per_page(param: str = "per_page", default: int = 20) -> int:
    """Return a page size from :data:`PAGINATION_SIZES`.

    Unknown values in the query string fall back to ``default`` (or to the
    smallest size when ``default`` itself is not allowed).
    """

    value = request.args.get(param, type=int)
    if value in PAGINATION_SIZES:
        return value
    if default in PAGINATION_SIZES:
        return default
    return PAGINATION_SIZES[0]


def build_pagination_args(
    per_page: int,
    *,
    page_param: str = "page",
    per_page_param: str = "per_page",
) -> Dict[str, Union[str, List[str]]]:
    """Return ``url_for`` arguments that keep the active filters.

    The page number is dropped so each pagination link can set its own.
    """

    args: Dict[str, Union[str, List[str]]] = {}
    for key, values in request.args.lists():
        if key in {page_param, per_page_param} or not values:
            continue
        args[key] = values[0] if len(values) == 1 else values
    args[per_page_param] = str(per_page)
    return args
