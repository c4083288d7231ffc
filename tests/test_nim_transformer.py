"""
OpenAI <-> NIM request/response translation.
"""
import pytest

from nim_proxy.errors import UpstreamError
from nim_proxy.nim_transformer import NIMTransformer
from nim_proxy.schemas import OpenAIRequest

from conftest import completion_body


MESSAGES = [
    {"role": "system", "content": "You are terse."},
    {"role": "user", "content": "  Héllo\n\twörld 🚀  "},
]


@pytest.fixture
def transformer(settings):
    return NIMTransformer(settings)


class TestTransformRequestIn:

    def test_defaults_applied_when_absent(self, transformer):
        request = OpenAIRequest(model="gpt-4", messages=MESSAGES)
        nim = transformer.transform_request_in(request, "qwen/qwq-32b")

        assert nim.model == "qwen/qwq-32b"
        assert nim.temperature == 0.6
        assert nim.max_tokens == 9024
        assert nim.stream is False

    def test_explicit_zero_is_replaced_in_compat_mode(self, transformer):
        request = OpenAIRequest(model="gpt-4", messages=MESSAGES, temperature=0, max_tokens=0)
        nim = transformer.transform_request_in(request, "qwen/qwq-32b")

        assert nim.temperature == 0.6
        assert nim.max_tokens == 9024

    def test_strict_mode_keeps_explicit_zero(self, settings):
        transformer = NIMTransformer(settings.model_copy(update={"STRICT_DEFAULTS": True}))

        zero = transformer.transform_request_in(
            OpenAIRequest(model="gpt-4", messages=MESSAGES, temperature=0), "m"
        )
        absent = transformer.transform_request_in(OpenAIRequest(model="gpt-4", messages=MESSAGES), "m")

        assert zero.temperature == 0
        assert absent.temperature == 0.6

    def test_strict_mode_keeps_zero_max_tokens(self, settings):
        transformer = NIMTransformer(settings.model_copy(update={"STRICT_DEFAULTS": True}))

        nim = transformer.transform_request_in(
            OpenAIRequest(model="gpt-4", messages=MESSAGES, max_tokens=0), "m"
        )

        assert nim.max_tokens == 0
        assert nim.to_payload()["max_tokens"] == 0
        assert nim.temperature == 0.6

    def test_explicit_values_kept(self, transformer):
        request = OpenAIRequest(model="gpt-4", messages=MESSAGES, temperature=1.2, max_tokens=64, stream=True)
        nim = transformer.transform_request_in(request, "m")

        assert nim.temperature == 1.2
        assert nim.max_tokens == 64
        assert nim.stream is True

    def test_messages_passed_through_unchanged(self, transformer):
        messages = [
            {"role": "user", "content": [{"type": "text", "text": "part"}], "name": "bob"},
            {"role": "assistant", "content": None, "tool_calls": [{"id": "x"}]},
            {"role": "user", "content": MESSAGES[1]["content"]},
        ]
        request = OpenAIRequest(model="gpt-4", messages=messages)
        payload = transformer.transform_request_in(request, "m").to_payload()

        assert payload["messages"] == messages
        assert payload["messages"][2]["content"] == "  Héllo\n\twörld 🚀  "

    def test_empty_messages(self, transformer):
        nim = transformer.transform_request_in(OpenAIRequest(model="gpt-4", messages=[]), "m")
        assert nim.messages == []

    def test_missing_messages_not_forwarded(self, transformer):
        payload = transformer.transform_request_in(OpenAIRequest(model="gpt-4"), "m").to_payload()
        assert "messages" not in payload

    def test_null_messages_forwarded_as_null(self, transformer):
        payload = transformer.transform_request_in(OpenAIRequest(model="gpt-4", messages=None), "m").to_payload()
        assert "messages" in payload
        assert payload["messages"] is None

    def test_thinking_option_attached(self, transformer):
        nim = transformer.transform_request_in(OpenAIRequest(model="gpt-4"), "m")
        assert nim.to_payload()["chat_template_kwargs"] == {"thinking": True}

    def test_client_template_kwargs_merged(self, transformer):
        request = OpenAIRequest(model="gpt-4", chat_template_kwargs={"thinking": False, "extra": 1})
        nim = transformer.transform_request_in(request, "m")
        assert nim.chat_template_kwargs == {"thinking": False, "extra": 1}

    def test_thinking_disabled_omits_option(self, settings):
        transformer = NIMTransformer(settings.model_copy(update={"ENABLE_THINKING": False}))
        payload = transformer.transform_request_in(OpenAIRequest(model="gpt-4"), "m").to_payload()
        assert "chat_template_kwargs" not in payload

    def test_translation_is_idempotent(self, transformer):
        request = OpenAIRequest(model="gpt-4", messages=MESSAGES, temperature=0.3, stream=True)
        first = transformer.transform_request_in(request, "qwen/qwq-32b")
        second = transformer.transform_request_in(request, "qwen/qwq-32b")

        assert first == second
        assert first.to_payload() == second.to_payload()


class TestTransformResponseOut:

    def test_model_echoes_client_request(self, transformer):
        body = completion_body()
        response = transformer.transform_response_out(body, "gpt-4")

        assert response["model"] == "gpt-4"
        assert response["object"] == "chat.completion"
        assert response["id"].startswith("chatcmpl-")
        assert isinstance(response["created"], int)

    def test_choices_mapped_one_to_one(self, transformer):
        body = completion_body()
        body["choices"].append(
            {
                "index": 1,
                "message": {"role": "assistant", "content": "two", "reasoning_content": "hmm"},
                "finish_reason": "length",
                "logprobs": None,
            }
        )
        response = transformer.transform_response_out(body, "gpt-4")

        assert response["choices"] == [
            {"index": 0, "message": {"role": "assistant", "content": "Hello!"}, "finish_reason": "stop"},
            {
                "index": 1,
                "message": {"role": "assistant", "content": "two", "reasoning_content": "hmm"},
                "finish_reason": "length",
            },
        ]

    def test_unusual_choice_fields_copied_as_is(self, transformer):
        body = {
            "choices": [
                {"index": "0", "message": "plain text", "finish_reason": ["stop", "eos"]},
                {"message": None, "finish_reason": 7},
            ]
        }
        response = transformer.transform_response_out(body, "gpt-4")

        assert response["choices"] == [
            {"index": "0", "message": "plain text", "finish_reason": ["stop", "eos"]},
            {"index": None, "message": None, "finish_reason": 7},
        ]

    def test_usage_zeroed_when_missing(self, transformer):
        response = transformer.transform_response_out(completion_body(), "gpt-4")
        assert response["usage"] == {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}

    def test_usage_passed_through(self, transformer):
        usage = {"prompt_tokens": 12, "completion_tokens": 3, "total_tokens": 15}
        response = transformer.transform_response_out(completion_body(usage=usage), "gpt-4")
        assert response["usage"] == usage

    def test_ids_are_unique(self, transformer):
        ids = {transformer.transform_response_out(completion_body(), "gpt-4")["id"] for _ in range(50)}
        assert len(ids) == 50

    @pytest.mark.parametrize("body", [{}, {"choices": None}, {"choices": "oops"}, {"choices": [1, 2]}])
    def test_missing_choices_is_malformed(self, transformer, body):
        with pytest.raises(UpstreamError) as exc_info:
            transformer.transform_response_out(body, "gpt-4")

        assert exc_info.value.status_code == 500
        assert "Malformed upstream response" in str(exc_info.value)
