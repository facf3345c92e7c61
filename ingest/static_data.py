"""Reader for hand-maintained JSON inputs (AAII survey, global PMI)."""
import asyncio
import json
from pathlib import Path
from typing import Type, TypeVar

from pydantic import BaseModel

from common.errors import ErrorKind, ProviderError
from ingest.base import decode

M = TypeVar("M", bound=BaseModel)


def _read_json(path: Path):
    with open(path, encoding="utf-8") as f:
        return json.load(f)


async def load_static(path: Path, model: Type[M]) -> M:
    try:
        payload = await asyncio.to_thread(_read_json, path)
    except FileNotFoundError as e:
        raise ProviderError(ErrorKind.DATA_FORMAT, f"{path.name} not found", provider="static") from e
    except (OSError, ValueError) as e:
        raise ProviderError(ErrorKind.DATA_FORMAT, f"{path.name} unreadable: {e}", provider="static") from e
    return decode(model, payload, "static")
