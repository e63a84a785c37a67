"""领域层模型与协议。

包含：
- models: 统一的 ChatMessage / ChatRequest / ChatResult 模型。
- conversation: 历史消息、单轮选项与单轮结果。
- cancellation: 协作式取消令牌。
- exceptions: 业务异常类型定义。
"""
