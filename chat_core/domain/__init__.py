"""领域层模型与协议。

包含：
- models: Message / ChatUsage / CompletionResult 数据模型。
- conversation: 会话聚合（配置、消息序列、缓存结果、错误状态）。
- error_state: 会话最近一次失败的记录。
- exceptions: 业务异常类型与错误码定义。
"""
