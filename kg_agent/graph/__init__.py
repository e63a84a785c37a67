"""图谱数据模型与合成（节点/边去重、类型推断、截断）。"""
