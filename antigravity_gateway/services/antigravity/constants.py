"""Antigravity 全局常量定义。

上游端点本身来自配置（``config.endpoint``），这里只放协议层面的固定值。
"""

from __future__ import annotations

# ============== 公共 API 识别 ==============
# 调用方按公共 Gemini API 发请求，命中该 host 的请求才会被改写
GENERATIVE_LANGUAGE_HOST = "generativelanguage.googleapis.com"
# /models/{model}:{action}
MODEL_ACTION_PATTERN = r"/models/([^:]+):(\w+)"
STREAM_ACTION = "streamGenerateContent"

# ============== v1internal 路径 ==============
V1INTERNAL_PATH_TEMPLATE = "/v1internal:{action}"

# ============== Client Identity Headers ==============
# 无论调用方传了什么，这三个 header 都覆盖为上游要求的固定值
HTTP_USER_AGENT = "antigravity/1.11.5 windows/amd64"
GOOG_API_CLIENT = "google-cloud-sdk vscode_cloudshelleditor/0.1"
CLIENT_METADATA = (
    '{"ideType":"IDE_UNSPECIFIED","platform":"PLATFORM_UNSPECIFIED","pluginType":"GEMINI"}'
)
# 调用方可能携带的 API key header，改用 Bearer token 后需移除
API_KEY_HEADERS = ("x-api-key", "x-goog-api-key")

# V1InternalRequest.userAgent 字段（固定值）
REQUEST_USER_AGENT = "antigravity"

# ============== Thinking Signature ==============
DUMMY_THOUGHT_SIGNATURE = "skip_thought_signature_validator"
# 长度超过该值的签名视为真实签名（config.min_signature_length 可覆盖）
MIN_SIGNATURE_LENGTH = 50

# ============== Tools ==============
GOOGLE_SEARCH_FUNCTION_NAME = "google_search"
# 原生搜索 tool 的几种写法，统一输出为 googleSearch
NATIVE_SEARCH_TOOL_KEYS = ("googleSearch", "google_search", "googleSearchRetrieval")
# 搜索与 functionDeclarations 不可混用的模型关键字
SEARCH_EXCLUSIVE_MODEL_KEYWORDS = ("flash",)
# 除 functionDeclarations 外保留的原生 tool
RETAINED_NATIVE_TOOL_KEYS = ("googleSearch", "urlContext", "codeExecution")

FUNCTION_CALLING_MODE = "VALIDATED"

# ============== Claude Thinking 输出预算 ==============
CLAUDE_MODEL_KEYWORD = "claude"
CLAUDE_THINKING_OUTPUT_OVERHEAD = 8192
CLAUDE_MAX_OUTPUT_TOKENS = 64000

# ============== Response ==============
RETRY_INFO_TYPE = "type.googleapis.com/google.rpc.RetryInfo"
RETRY_AFTER_MS_HEADER = "retry-after-ms"
USAGE_HEADERS = {
    "prompt_token_count": "x-gemini-prompt-token-count",
    "candidates_token_count": "x-gemini-candidates-token-count",
    "cached_content_token_count": "x-gemini-cached-content-token-count",
    "total_token_count": "x-gemini-total-token-count",
}
PREVIEW_ACCESS_LINK = "https://goo.gle/enable-preview-features"

# ============== Debug ==============
DEBUG_BODY_PREVIEW_CHARS = 2000
SENSITIVE_HEADERS = frozenset({"authorization", "x-api-key", "x-goog-api-key"})

__all__ = [
    "API_KEY_HEADERS",
    "CLAUDE_MAX_OUTPUT_TOKENS",
    "CLAUDE_MODEL_KEYWORD",
    "CLAUDE_THINKING_OUTPUT_OVERHEAD",
    "CLIENT_METADATA",
    "DEBUG_BODY_PREVIEW_CHARS",
    "DUMMY_THOUGHT_SIGNATURE",
    "FUNCTION_CALLING_MODE",
    "GENERATIVE_LANGUAGE_HOST",
    "GOOGLE_SEARCH_FUNCTION_NAME",
    "GOOG_API_CLIENT",
    "HTTP_USER_AGENT",
    "MIN_SIGNATURE_LENGTH",
    "MODEL_ACTION_PATTERN",
    "NATIVE_SEARCH_TOOL_KEYS",
    "PREVIEW_ACCESS_LINK",
    "REQUEST_USER_AGENT",
    "RETAINED_NATIVE_TOOL_KEYS",
    "RETRY_AFTER_MS_HEADER",
    "RETRY_INFO_TYPE",
    "SEARCH_EXCLUSIVE_MODEL_KEYWORDS",
    "SENSITIVE_HEADERS",
    "STREAM_ACTION",
    "USAGE_HEADERS",
    "V1INTERNAL_PATH_TEMPLATE",
]
