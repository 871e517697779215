"""CLI for entity links."""

import getpass
import sys
from pathlib import Path
from typing import Annotated, Literal

import structlog
from cyclopts import App, Parameter

from entity_links.actions import ActionResult, Actions, StaticAuth
from entity_links.annotation_commands import evidence_app, feedback_app
from entity_links.backend import Backend
from entity_links.backends import LocalBackend, SupabaseBackend
from entity_links.config import get_config
from entity_links.config_commands import config_app
from entity_links.link_commands import link_app
from entity_links.models import EntityRef, EntityType
from entity_links.observability import set_slow_query_threshold
from entity_links.pending import PendingBuffer
from entity_links.stage_commands import stage_app
from entity_links.validation import get_suggested_link_types, set_uncommon_link_warnings

logger = structlog.get_logger()

app = App(
    help="Entity Links - Typed relationships between product-development entities",
)

app.command(link_app)
app.command(config_app)
app.command(evidence_app)
app.command(feedback_app)
app.command(stage_app)


def configure_logging(log_level: str) -> None:
    """Configure structlog with the specified log level."""
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(min_level=log_level.lower()))


def get_backend() -> Backend:
    """Get the configured backend and apply logging and validation settings."""
    config = get_config()
    set_slow_query_threshold(config.get_int("logging.slow_query_ms"))
    set_uncommon_link_warnings(config.get_bool("links.warn_uncommon"))

    backend_type = config.get("backend")
    if backend_type == "local":
        return LocalBackend(path=Path(config.get("local.path")))
    elif backend_type == "supabase":
        url = config.get("supabase.url")
        key = config.get("supabase.key")
        if not url or not key:
            raise ValueError(
                "Supabase url and key not configured. Set them using:\n"
                "  el config set supabase.url <url>\n"
                "  el config set supabase.key <key>\n"
                "or export SUPABASE_URL and SUPABASE_KEY"
            )
        return SupabaseBackend(url=url, key=key)
    else:
        raise ValueError(f"Unknown backend: {backend_type}")


def get_actions() -> Actions:
    """Actions bound to the configured backend and the local user."""
    user = get_config().get("user") or getpass.getuser()
    return Actions(
        get_backend(),
        StaticAuth(user),
        revalidate=lambda path: logger.debug("Revalidated path", path=path),
    )


def parse_ref(value: str) -> EntityRef:
    """Parse ``type:id`` (or a bare ``type``) into an entity reference."""
    entity_type, _, entity_id = value.partition(":")
    try:
        return EntityRef(EntityType(entity_type.strip()), entity_id.strip() or None)
    except ValueError:
        valid = ", ".join(t.value for t in EntityType)
        raise ValueError(f"Unknown entity type '{entity_type}'. Valid types: {valid}") from None


def parse_fields(fields: str) -> dict[str, str]:
    """Parse ``key=value,key=value`` into a dict."""
    values = {}
    for pair in fields.split(","):
        if "=" in pair:
            key, value = pair.split("=", 1)
            values[key.strip()] = value.strip()
    return values


def report(result: ActionResult, message: str) -> None:
    """Print the outcome of an action and exit non-zero on failure."""
    if not result.success:
        print(f"Error [{result.code.value}]: {result.error}", file=sys.stderr)
        sys.exit(1)
    print(message)
    for warning in result.warnings:
        print(f"Warning: {warning}")


@app.command
def create(
    entity_type: str,
    fields: str = "",
    *,
    link: tuple[str, ...] = (),
) -> None:
    """Create a new entity, optionally linking it in the same step.

    Args:
        entity_type: Entity type tag, e.g. assumption
        fields: Column values as key=value,key=value
        link: Links to create as target_type:target_id[:link_type]
    """
    entity_type = EntityType(entity_type)
    pending = PendingBuffer()
    for spec in link:
        target_type, target_id, link_type = (spec.split(":") + [""])[:3]
        target_type = EntityType(target_type)
        link_type = link_type or get_suggested_link_types(entity_type, target_type)[0]
        pending.add_link(target_type, target_id, target_id, link_type)

    result = get_actions().create_entity(entity_type, parse_fields(fields), pending)
    report(result, f"Created {entity_type.label} {result.data['id']}" if result.success else "")


@app.command
def read(entity: str) -> None:
    """Read an entity given as type:id."""
    ref = parse_ref(entity)
    row = get_backend().select_one(ref.type.table, eq={"id": ref.require_id("read")})
    if row is None:
        print(f"{ref.type.label.capitalize()} {ref.id} not found")
        return

    print(f"Entity: {ref}")
    for key, value in row.items():
        if key != "id" and value not in (None, "", [], {}):
            print(f"{key}: {value}")


@app.command
def delete(*entities: str) -> None:
    """Delete one or more entities given as type:id."""
    actions = get_actions()
    for entity in entities:
        report(actions.delete_entity(parse_ref(entity)), f"Deleted {entity}")


@app.meta.default
def main(
    *tokens: Annotated[str, Parameter(show=False, allow_leading_hyphen=True)],
    log_level: Literal["debug", "info", "warning", "error", "critical"] = "critical",
) -> None:
    """Main entry point with global options."""
    configure_logging(log_level)
    app(tokens)


if __name__ == "__main__":
    app.meta()
