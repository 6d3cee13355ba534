"""Chat Completions 集成层。

该包下的模块负责：
- 把会话序列化为请求体 (request_builder)。
- 执行 HTTP 交换与重试 (transport)。
- 解析完整响应与事件流 (response_decoder、stream_decoder)。
- 编排一次性与流式补全 (chat_client)。
- 模型列表与图片生成等辅助端点 (extras)。
"""

from chat_core.providers.chat_client import ChatClient, CompletionStream, query

__all__ = ["ChatClient", "CompletionStream", "query"]
