"""Tests for sentence-aware prompt chunking."""

import pytest

from scribe.audio.summarizer import chunk_tokens, context_window, split_text_into_prompts
from scribe.audio.tokenizer import get_tokenizer

TEXTS = [
    "A. B. C.",
    "First sentence. Second one! A question? And a trailing fragment",
    "吾輩は猫である。名前はまだ無い。どこで生れたかとんと見当がつかぬ！",
    "no terminators at all just a long run of words that keeps going and going " * 4,
    "Ends with whitespace.   \n\n",
    "...!!!???",
]


def test_short_text_is_one_prompt(tokenizer):
    assert split_text_into_prompts("A. B. C.", 100, tokenizer) == ["A. B. C."]


def test_sentences_pack_until_budget(tokenizer):
    # 4 tokens per sentence: 4 + 4 = 8 < 10 fits, 8 + 4 = 12 does not
    prompts = split_text_into_prompts("abc.def.ghi.", 10, tokenizer)
    assert prompts == ["abc.def.", "ghi."]


def test_terminator_stays_with_its_sentence(tokenizer):
    prompts = split_text_into_prompts("One. Two.", 6, tokenizer)
    assert prompts == ["One.", " Two."]


def test_empty_text_gives_one_empty_prompt(tokenizer):
    assert split_text_into_prompts("", 10, tokenizer) == [""]


@pytest.mark.parametrize("text", TEXTS)
@pytest.mark.parametrize("budget", [5, 12, 40, 1000])
def test_prompts_rejoin_to_input(tokenizer, text, budget):
    assert "".join(split_text_into_prompts(text, budget, tokenizer)) == text


@pytest.mark.parametrize("text", TEXTS[:3])
def test_prompts_stay_under_budget_when_sentences_fit(tokenizer, text):
    budget = 40
    for chunk in chunk_tokens(text, budget, tokenizer):
        assert len(chunk) < budget


def test_long_first_run_falls_back_to_words(tokenizer):
    text = "word " * 50
    prompts = split_text_into_prompts(text, 20, tokenizer)

    assert len(prompts) > 1
    assert "".join(prompts) == text
    assert all(len(p) < 20 for p in prompts)


def test_oversized_later_sentence_becomes_its_own_prompt(tokenizer):
    text = "Hi. " + "x" * 30 + ". Bye."
    prompts = split_text_into_prompts(text, 10, tokenizer)

    assert "".join(prompts) == text
    assert prompts == ["Hi.", " " + "x" * 30 + ".", " Bye."]


def test_japanese_sentences_split_on_full_width_terminators(tokenizer):
    text = "今日は晴れ。明日は雨！"
    assert split_text_into_prompts(text, 8, tokenizer) == ["今日は晴れ。", "明日は雨！"]


def test_budget_must_be_positive(tokenizer):
    with pytest.raises(ValueError):
        chunk_tokens("text", 0, tokenizer)


def test_context_window_defaults_to_gpt4():
    assert context_window("gpt-3.5-turbo") == 4096
    assert context_window("gpt-4-32k") == 32768
    assert context_window("some-new-model") == 8192


@pytest.fixture
def real_tokenizer():
    try:
        return get_tokenizer("gpt-4")
    except Exception as e:  # the encoding is downloaded on first use
        pytest.skip(f"tiktoken encoding unavailable: {e}")


def test_real_tokenizer_round_trip_and_budget(real_tokenizer):
    text = "吾輩は猫である。名前はまだ無い。" * 200 + "Special tokens like <|endoftext|> are plain text here."
    chunks = chunk_tokens(text, 256, real_tokenizer)

    assert len(chunks) > 1
    assert "".join(real_tokenizer.decode(c) for c in chunks) == text
    assert all(len(c) < 256 for c in chunks)
