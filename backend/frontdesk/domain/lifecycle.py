"""
预订生命周期

reserved → checked_in → checked_out → completed，
cancelled 为删除分支（可从 reserved / checked_out / completed 进入，不能从 checked_in 进入）。
add_charge / add_payment / update 是自环事件，只用于判定是否允许。
"""
from enum import Enum
import logging

from frontdesk.engine.state_machine import StateMachine, StateMachineConfig, StateTransition
from frontdesk.errors import InvalidTransitionError
from frontdesk.models.ontology import Reservation, ReservationStatus

logger = logging.getLogger(__name__)


class ReservationEvent(str, Enum):
    """预订生命周期事件"""
    CHECK_IN = "check_in"
    ADD_CHARGE = "add_charge"
    ADD_PAYMENT = "add_payment"
    UPDATE = "update"
    CHECK_OUT = "check_out"
    CLEAN_COMPLETE = "clean_complete"
    DELETE = "delete"


_S = ReservationStatus
_E = ReservationEvent


def _loop(state: ReservationStatus, event: ReservationEvent) -> StateTransition:
    return StateTransition(state.value, state.value, event.value)


RESERVATION_TRANSITIONS = [
    StateTransition(_S.RESERVED.value, _S.CHECKED_IN.value, _E.CHECK_IN.value),
    StateTransition(_S.CHECKED_IN.value, _S.CHECKED_OUT.value, _E.CHECK_OUT.value),
    StateTransition(_S.CHECKED_OUT.value, _S.COMPLETED.value, _E.CLEAN_COMPLETE.value),

    StateTransition(_S.RESERVED.value, _S.CANCELLED.value, _E.DELETE.value),
    StateTransition(_S.CHECKED_OUT.value, _S.CANCELLED.value, _E.DELETE.value),
    StateTransition(_S.COMPLETED.value, _S.CANCELLED.value, _E.DELETE.value),

    _loop(_S.RESERVED, _E.ADD_CHARGE),
    _loop(_S.CHECKED_IN, _E.ADD_CHARGE),
    _loop(_S.RESERVED, _E.ADD_PAYMENT),
    _loop(_S.CHECKED_IN, _E.ADD_PAYMENT),
    _loop(_S.RESERVED, _E.UPDATE),
    _loop(_S.CHECKED_IN, _E.UPDATE),
    _loop(_S.CHECKED_OUT, _E.UPDATE),
    _loop(_S.COMPLETED, _E.UPDATE),
]

reservation_lifecycle = StateMachine(
    StateMachineConfig(
        name="Reservation",
        states=[s.value for s in ReservationStatus],
        transitions=RESERVATION_TRANSITIONS,
        final_states=[_S.CANCELLED.value],
    )
)


def next_status(current: ReservationStatus, event: ReservationEvent) -> ReservationStatus:
    """返回事件后的状态；表外转换抛出 InvalidTransitionError"""
    target = reservation_lifecycle.resolve(current.value, event.value)
    if target is None:
        raise InvalidTransitionError(current.value, event.value)
    return ReservationStatus(target)


def ensure_allowed(reservation: Reservation, event: ReservationEvent) -> None:
    """仅校验，不改状态"""
    next_status(reservation.status, event)


def advance(reservation: Reservation, event: ReservationEvent) -> ReservationStatus:
    """执行事件并写回预订状态"""
    previous = reservation.status
    reservation.status = next_status(previous, event)
    if reservation.status != previous:
        logger.info(
            f"Reservation {reservation.reservation_code}: "
            f"{previous.value} -> {reservation.status.value} ({event.value})"
        )
    return reservation.status
