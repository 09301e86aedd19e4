import pytest
from tokenizers import Tokenizer
from tokenizers.models import WordLevel
from tokenizers.pre_tokenizers import Whitespace
from tokenizers.processors import TemplateProcessing
from transformers import PreTrainedTokenizerFast

from gateway.context import ModelContext
from gateway.tokenizer import TokenizerAdapter

VOCAB = {
    "[PAD]": 0,
    "[UNK]": 1,
    "[CLS]": 2,
    "[SEP]": 3,
    "hello": 4,
    "world": 5,
    "a": 6,
    "b": 7,
    "q": 8,
    "d1": 9,
    "d2": 10,
    "d3": 11,
    "c": 12,
    "d": 13,
    "e": 14,
}


def build_backend_tokenizer() -> Tokenizer:
    backend = Tokenizer(WordLevel(VOCAB, unk_token="[UNK]"))
    backend.pre_tokenizer = Whitespace()
    backend.add_special_tokens(["[PAD]", "[UNK]", "[CLS]", "[SEP]"])
    backend.post_processor = TemplateProcessing(
        single="[CLS] $A [SEP]",
        pair="[CLS] $A [SEP] $B:1 [SEP]:1",
        special_tokens=[("[CLS]", VOCAB["[CLS]"]), ("[SEP]", VOCAB["[SEP]"])],
    )
    return backend


def build_word_tokenizer() -> TokenizerAdapter:
    fast = PreTrainedTokenizerFast(
        tokenizer_object=build_backend_tokenizer(),
        unk_token="[UNK]",
        pad_token="[PAD]",
        cls_token="[CLS]",
        sep_token="[SEP]",
    )
    return TokenizerAdapter(fast, name="test-wordlevel")


@pytest.fixture
def word_tokenizer() -> TokenizerAdapter:
    return build_word_tokenizer()


@pytest.fixture
def model_context(word_tokenizer: TokenizerAdapter) -> ModelContext:
    return ModelContext(embedding_tokenizer=word_tokenizer, reranker_tokenizer=word_tokenizer)
