"""
frontdesk/engine/state_machine.py

状态机引擎 - 显式转换表 allowed[from][trigger] = to

状态保存在业务对象上（数据库字段），引擎本身无状态，
只负责查表和拒绝表外转换。
"""
from typing import Dict, List, Optional, Sequence
from dataclasses import dataclass, field
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateTransition:
    """
    状态转换定义

    Attributes:
        from_state: 源状态
        to_state: 目标状态
        trigger: 触发动作
    """

    from_state: str
    to_state: str
    trigger: str


@dataclass
class StateMachineConfig:
    """
    状态机配置

    Attributes:
        name: 状态机名称
        states: 所有状态的列表
        transitions: 转换列表
        final_states: 终态（不再有出边）
    """

    name: str
    states: List[str]
    transitions: List[StateTransition]
    final_states: List[str] = field(default_factory=list)


class StateMachine:
    """
    表驱动状态机

    Example:
        >>> machine = StateMachine(StateMachineConfig(
        ...     name="Door",
        ...     states=["open", "closed"],
        ...     transitions=[StateTransition("open", "closed", "close")],
        ... ))
        >>> machine.resolve("open", "close")
        'closed'
        >>> machine.resolve("closed", "close") is None
        True
    """

    def __init__(self, config: StateMachineConfig):
        self._config = config
        self._table: Dict[str, Dict[str, str]] = {}

        for t in config.transitions:
            if t.from_state not in config.states or t.to_state not in config.states:
                raise ValueError(
                    f"{config.name}: transition {t.from_state} -> {t.to_state} uses an unknown state"
                )
            if t.from_state in config.final_states:
                raise ValueError(f"{config.name}: final state {t.from_state} cannot have transitions")
            row = self._table.setdefault(t.from_state, {})
            if t.trigger in row:
                raise ValueError(
                    f"{config.name}: duplicate trigger {t.trigger} from {t.from_state}"
                )
            row[t.trigger] = t.to_state

    @property
    def config(self) -> StateMachineConfig:
        """获取状态机配置"""
        return self._config

    @property
    def name(self) -> str:
        return self._config.name

    def resolve(self, current_state: str, trigger: str) -> Optional[str]:
        """查表：返回目标状态，表中不存在则返回 None"""
        return self._table.get(current_state, {}).get(trigger)

    def can_fire(self, current_state: str, trigger: str) -> bool:
        """检查当前状态下触发动作是否合法"""
        return self.resolve(current_state, trigger) is not None

    def triggers_from(self, current_state: str) -> Sequence[str]:
        """当前状态下所有合法的触发动作"""
        return tuple(self._table.get(current_state, {}).keys())

    def is_final(self, state: str) -> bool:
        return state in self._config.final_states


__all__ = [
    "StateTransition",
    "StateMachineConfig",
    "StateMachine",
]
