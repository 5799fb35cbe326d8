"""
Inverse Synthesis
~~~~~~~~~~~~~~~~~

Derives the command and parameters that undo a recorded action when
the handler was registered without explicit inverse metadata.

Both derivations are substring heuristics over the command name and
are only a fallback: handlers that declare ``inverse_command`` and
``inverse_params`` at registration bypass them.
"""

from __future__ import annotations

import re
from typing import Any

from aegis_guard.core.levels import ChangeType

__all__ = ["INVERSE_COMMANDS", "invert_command", "invert_params", "infer_change_type"]

# Checked in order; the first fragment found in the command is replaced.
INVERSE_COMMANDS: tuple[tuple[str, str], ...] = (
    ("spawn_actor", "delete_actor"),
    ("create_actor", "delete_actor"),
    ("delete_actor", "spawn_actor"),
    ("modify_actor", "modify_actor"),
    ("move_actor", "move_actor"),
    ("create_blueprint", "delete_blueprint"),
    ("delete_blueprint", "create_blueprint"),
    ("modify_blueprint", "modify_blueprint"),
    ("create_material", "delete_material"),
    ("delete_material", "create_material"),
    ("modify_material", "modify_material"),
    ("create_level", "delete_level"),
    ("rename_asset", "rename_asset"),
    ("move_asset", "move_asset"),
    ("import_asset", "delete_asset"),
)

_FALLBACK_VERB = re.compile(r"create|delete|spawn")


def invert_command(command: str) -> str:
    """
    Return the command that undoes ``command``.

    Example::

        invert_command("spawn_actor")        # "delete_actor"
        invert_command("core.delete_actor")  # "core.spawn_actor"
        invert_command("create_widget")      # "modify_widget"
    """
    for fragment, inverse in INVERSE_COMMANDS:
        if fragment in command:
            return command.replace(fragment, inverse, 1)
    return _FALLBACK_VERB.sub("modify", command, count=1)


def invert_params(
    command: str,
    target: str,
    previous_state: dict[str, Any],
) -> dict[str, Any]:
    """
    Build the parameters for the inverse of ``command``.

    Identity keys (``actor_path``, ``target``) always take precedence over
    same-named keys in ``previous_state`` so the inverse addresses the
    entity that was changed.
    """
    identity = {"actor_path": target, "target": target}

    if "delete" in command or "remove" in command:
        # Re-create the entity from its last known state.
        return {**previous_state, **identity}

    if "create" in command or "spawn" in command:
        return {**identity, "path": target}

    if "modify" in command or "update" in command or "set" in command:
        return {**previous_state, "properties": dict(previous_state), **identity}

    if "move" in command:
        return {
            **previous_state,
            "location": previous_state.get("location"),
            "rotation": previous_state.get("rotation"),
            "previous_path": target,
            **identity,
        }

    return dict(previous_state)


def infer_change_type(command: str) -> ChangeType:
    """Guess the change type of a command from its name."""
    if "create" in command or "spawn" in command or "add" in command:
        return ChangeType.CREATE
    if "delete" in command or "remove" in command:
        return ChangeType.DELETE
    if "move" in command:
        return ChangeType.MOVE
    return ChangeType.MODIFY
