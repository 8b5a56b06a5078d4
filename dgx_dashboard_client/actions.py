"""Per-container control actions and how their buttons are presented."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from .protocol import ContainerState, DockerCommand

VisibilityRule = Callable[[bool, bool], bool]


@dataclass(frozen=True, slots=True)
class DockerAction:
    command: DockerCommand
    label: str
    pending_label: str
    should_show: VisibilityRule
    confirm_prompt: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ButtonState:
    command: DockerCommand
    visible: bool
    label: str
    disabled: bool


# Table order is the on-screen button order.
DOCKER_ACTIONS: Mapping[DockerCommand, DockerAction] = {
    DockerCommand.START: DockerAction(
        command=DockerCommand.START,
        label="Start",
        pending_label="Starting…",
        should_show=lambda running, protected: not running,
    ),
    DockerCommand.STOP: DockerAction(
        command=DockerCommand.STOP,
        label="Stop",
        pending_label="Stopping…",
        should_show=lambda running, protected: running and not protected,
        confirm_prompt="Are you sure you want to stop this container?",
    ),
    DockerCommand.RESTART: DockerAction(
        command=DockerCommand.RESTART,
        label="Restart",
        pending_label="Starting…",
        should_show=lambda running, protected: running and protected,
        confirm_prompt="Are you sure you want to restart this container?",
    ),
}


def requires_confirmation(command: DockerCommand | str, is_running: bool) -> bool:
    """Stopping always needs confirmation; restarting only a running container."""

    resolved = DockerCommand(command)
    if resolved is DockerCommand.STOP:
        return True
    if resolved is DockerCommand.RESTART:
        return is_running
    return False


def confirmation_prompt(command: DockerCommand | str) -> str:
    action = DOCKER_ACTIONS[DockerCommand(command)]
    if action.confirm_prompt is None:
        raise ValueError(f"{action.command.value} is never confirmed")
    return action.confirm_prompt


def resolve_buttons(
    container: ContainerState,
    pending_command: Optional[DockerCommand],
    *,
    protected_marker: Optional[str] = None,
) -> tuple[ButtonState, ...]:
    """Compute every action button for ``container``.

    While a command is pending only its own button is shown, disabled and
    carrying the pending label.
    """

    running = container.is_running
    if protected_marker is None:
        protected = container.is_protected
    else:
        protected = container.is_protected_by(protected_marker)

    buttons: list[ButtonState] = []
    for command, action in DOCKER_ACTIONS.items():
        if pending_command is None:
            buttons.append(
                ButtonState(
                    command=command,
                    visible=action.should_show(running, protected),
                    label=action.label,
                    disabled=False,
                )
            )
        elif pending_command is command:
            buttons.append(
                ButtonState(
                    command=command,
                    visible=True,
                    label=action.pending_label,
                    disabled=True,
                )
            )
        else:
            buttons.append(
                ButtonState(command=command, visible=False, label=action.label, disabled=False)
            )
    return tuple(buttons)
