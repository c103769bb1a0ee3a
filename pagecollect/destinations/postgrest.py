"""
PostgREST destination

Upserts the flattened event (context_page_url, properties_plan, ...) into
the table the URL points at, keyed by messageId. When the table schema does
not match, the raised error carries the DDL that would fix it.
"""
from typing import Any, Dict
from urllib.parse import urlparse

from pagecollect.contracts.event import AnalyticsEvent
from pagecollect.core.config import Settings
from pagecollect.core.context import RequestContext
from pagecollect.core.exceptions import ConfigurationError, RemoteHTTPError
from pagecollect.core.objects import flatten, sanitize
from pagecollect.core.remote import remote_call
from pagecollect.destinations.base import Destination, DestinationFactory, HttpDestination


PRIMARY_KEY = "messageId"


def table_from_url(url: str) -> str:
    parts = [part for part in urlparse(url).path.split("/") if part.strip()]
    return parts[-1] if parts else "events"


def guess_column_type(value: Any) -> str:
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "BOOLEAN"
    if isinstance(value, (int, float)):
        return "DOUBLE PRECISION"
    return "TEXT"


def ddl(table: str, row: Dict[str, Any]) -> str:
    statements = [
        f'ALTER TABLE "{table}" ADD COLUMN IF NOT EXISTS "{column}" {guess_column_type(value)}'
        for column, value in row.items()
    ]
    statements.append(
        f'ALTER TABLE "{table}" ADD CONSTRAINT {table.lower()}_pkey PRIMARY KEY ("{PRIMARY_KEY}")'
    )
    return ";\n".join(statements) + ";"


class PostgrestDestination(HttpDestination):

    def __init__(self, url: str, api_key: str, timeout_ms: int):
        self.url = url
        self.api_key = api_key
        self.timeout_ms = timeout_ms

    def describe(self) -> str:
        return f"PostgREST @ {self.url}"

    async def send(self, event: AnalyticsEvent, ctx: RequestContext) -> None:
        row = sanitize(flatten(event.to_wire(), "_"))
        try:
            await remote_call(
                self.url,
                method="POST",
                headers={
                    "apikey": self.api_key,
                    "Authorization": f"Bearer {self.api_key}",
                    "Prefer": "resolution=merge-duplicates",
                },
                payload=row,
                timeout_ms=self.timeout_ms,
                client=self.client,
            )
        except RemoteHTTPError as e:
            raise RemoteHTTPError(
                f"{e.message}\n\nPlease make sure that schema is matching data by "
                f"running this script:\n\n{ddl(table_from_url(self.url), row)}",
                url=e.url,
                status_code=e.response_status,
                body=e.body,
            ) from e


class PostgrestFactory(DestinationFactory):
    name = "postgrest"

    def config_from_env(self, source: Settings) -> Dict[str, Any]:
        return {"url": source.POSTGREST_URL, "api_key": source.POSTGREST_API_KEY}

    def build(self, config: Dict[str, Any], timeout_ms: int) -> Destination:
        if not config.get("url"):
            raise ConfigurationError("Please define options.url or env POSTGREST_URL")
        if not config.get("api_key"):
            raise ConfigurationError("Please define options.api_key or env POSTGREST_API_KEY")
        return PostgrestDestination(config["url"], config["api_key"], timeout_ms=timeout_ms)


postgrest = PostgrestFactory()
