"""
frontdesk/engine - 通用引擎组件

- state_machine: 表驱动状态机
- event_bus: 进程内事件总线（发布/订阅）
"""
from frontdesk.engine.state_machine import StateTransition, StateMachineConfig, StateMachine
from frontdesk.engine.event_bus import Event, EventBus, event_bus

__all__ = [
    "StateTransition",
    "StateMachineConfig",
    "StateMachine",
    "Event",
    "EventBus",
    "event_bus",
]
