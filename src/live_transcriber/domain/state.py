from enum import Enum, auto


class ListeningState(Enum):
    IDLE = auto()
    CONNECTING = auto()
    LISTENING = auto()
    STOPPING = auto()


VALID_TRANSITIONS: dict[ListeningState, set[ListeningState]] = {
    ListeningState.IDLE: {ListeningState.CONNECTING},
    ListeningState.CONNECTING: {ListeningState.LISTENING, ListeningState.STOPPING, ListeningState.IDLE},
    ListeningState.LISTENING: {ListeningState.STOPPING},
    ListeningState.STOPPING: {ListeningState.IDLE},
}


class InvalidTransitionError(Exception):
    pass


def validate_transition(current: ListeningState, target: ListeningState) -> None:
    if target not in VALID_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(f"Cannot transition from {current.name} to {target.name}")
