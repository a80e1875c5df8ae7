"""Shared state handed to every directory case."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from tdd_core.assertions import AssertionRegistry
from tdd_core.utils import gen_tag, gen_urn_uuid
from tdd_sdk.client import DirectoryClient
from tdd_sdk.config import HarnessConfig


@dataclass
class Environment:
    client: DirectoryClient
    config: HarnessConfig
    registry: Optional[AssertionRegistry] = None

    def new_id(self) -> str:
        return gen_urn_uuid()

    def new_tag(self) -> str:
        return gen_tag()

    @classmethod
    def from_config(cls, config: HarnessConfig, http=None, registry: Optional[AssertionRegistry] = None) -> "Environment":
        client = DirectoryClient(
            config.server,
            things_path=config.things_path,
            anonymous_id_prefix=config.anonymous_id_prefix,
            timeout=config.timeout,
            client=http,
        )
        return cls(client=client, config=config, registry=registry)
