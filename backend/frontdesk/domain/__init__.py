"""
纯业务规则：生命周期转换表、冲突判定、付款分配、房态网格
不依赖数据库会话，可直接单元测试
"""
