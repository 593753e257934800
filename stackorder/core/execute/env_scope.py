from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Mapping, MutableMapping, Optional

_UNSET = object()


@contextmanager
def scoped_environment(
    env: MutableMapping[str, str], overrides: Optional[Mapping[str, str]]
) -> Iterator[MutableMapping[str, str]]:
    """Apply `overrides` to `env` for the duration of the block.

    Previous values are restored (or the keys removed) on every exit path,
    including when the body raises.
    """
    if not overrides:
        yield env
        return

    saved: dict[str, object] = {k: env.get(k, _UNSET) for k in overrides}
    env.update(overrides)
    try:
        yield env
    finally:
        for key, previous in saved.items():
            if previous is _UNSET:
                env.pop(key, None)
            else:
                env[key] = previous  # type: ignore[assignment]
