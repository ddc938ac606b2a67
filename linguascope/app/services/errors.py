from __future__ import annotations

from typing import ClassVar


class LinguaScopeError(RuntimeError):
    """Base class for every failure that ends a job or an enhancer call.

    `str(exc)` is the diagnostic message for logs; `user_message` is the localized
    text shown to the user.
    """

    default_user_message: ClassVar[str] = "작업 중 알 수 없는 오류가 발생했습니다."

    def __init__(self, message: str, *, user_message: str | None = None) -> None:
        super().__init__(message)
        self.user_message = user_message or self.default_user_message


class NetworkError(LinguaScopeError):
    default_user_message = (
        "네트워크 요청에 실패했습니다. 인터넷 연결을 확인하거나 프록시 서비스에 문제가 있을 수 있습니다."
    )


class HttpStatusError(LinguaScopeError):
    def __init__(self, status_code: int, reason: str | None = None) -> None:
        self.status_code = status_code
        self.reason = reason
        super().__init__(
            f"http_{status_code}",
            user_message=http_status_user_message(status_code, reason),
        )


class ExtractionError(LinguaScopeError):
    default_user_message = (
        "페이지에서 텍스트 콘텐츠를 추출하지 못했습니다. "
        "JavaScript로 동적 로딩되는 페이지일 수 있습니다."
    )


class MalformedResponseError(LinguaScopeError):
    default_user_message = "AI 분석 결과를 처리하지 못했습니다. 잠시 후 다시 시도해주세요."


class IncompleteResponseError(LinguaScopeError):
    default_user_message = "AI 분석 결과를 처리하지 못했습니다. 잠시 후 다시 시도해주세요."


class InvalidOutputError(LinguaScopeError):
    default_user_message = "AI가 올바른 HTML 응답을 반환하지 않았습니다."


class ModelCallError(LinguaScopeError):
    default_user_message = "AI 서비스 호출에 실패했습니다."


class RemoteOperationError(LinguaScopeError):
    def __init__(self, action: str, error: str) -> None:
        self.action = action
        super().__init__(
            f"proxy action failed action={action} error={error}",
            user_message=f"요청 실패: {error}",
        )


UNEXPECTED_FAILURE_MESSAGE = LinguaScopeError.default_user_message
ANALYSIS_FAILED_MESSAGE = MalformedResponseError.default_user_message
DETECTION_FAILED_MESSAGE = "언어 감지 중 오류가 발생했습니다."
ANALYSIS_TRANSLATION_FAILED_MESSAGE = "요약 번역 중 오류가 발생했습니다."
CONTENT_TRANSLATION_FAILED_MESSAGE = "전체 번역 중 오류가 발생했습니다."
ENHANCE_FAILED_MESSAGE = "가독성 개선 중 오류가 발생했습니다."

_HTTP_STATUS_HINTS: dict[int, str] = {
    403: "대상 서버가 접근을 거부했을 수 있습니다.",
    404: "페이지를 찾을 수 없습니다. URL을 확인해주세요.",
    500: "대상 서버 또는 프록시 서비스에 문제가 발생했습니다.",
    502: "대상 서버 또는 프록시 서비스에 문제가 발생했습니다.",
    503: "대상 서버 또는 프록시 서비스에 문제가 발생했습니다.",
    504: "대상 서버 또는 프록시 서비스에 문제가 발생했습니다.",
}


def http_status_user_message(status_code: int, reason: str | None) -> str:
    message = f"서버가 {status_code} 코드로 응답했습니다."
    if reason:
        message += f" ({reason})"
    hint = _HTTP_STATUS_HINTS.get(status_code)
    if hint is not None:
        message += f" {hint}"
    return message
