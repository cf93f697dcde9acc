"""Model, training and inference settings for the transformer."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar

T = TypeVar("T")

AUTO_WEIGHTS = "auto"

_TRUE_WORDS = {"1", "true", "yes", "on"}
_FALSE_WORDS = {"0", "false", "no", "off"}


def _as_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    text = str(raw).strip().lower()
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    raise ValueError(f"not a boolean: {raw!r}")


def _as_int(raw: Any) -> int:
    if isinstance(raw, str):
        return int(raw.strip())
    return int(raw)


def _as_float(raw: Any) -> float:
    if isinstance(raw, str):
        return float(raw.strip())
    return float(raw)


def _value(values: Mapping[str, Any], key: str, convert: Callable[[Any], T]) -> T:
    try:
        raw = values[key]
    except KeyError:
        raise KeyError(f"Missing configuration value: {key}") from None
    try:
        return convert(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid value for {key}: {raw!r}") from exc


@dataclass(frozen=True)
class TransformerConfig:
    """All settings read from the configuration file."""

    num_threads: int
    inference_mode: bool
    weights_filename: str
    data_filename: str
    embed_dim: int
    max_sequence_length: int
    num_layers: int
    num_heads: int
    ff_hidden_dim: int
    dropout_rate: float
    pad_token_id: float
    learning_rate: float
    num_epochs: int
    batch_size: int
    input_seq_length: int
    decoder_seq_length: int
    max_generate_length: int
    initial_prompt: str

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> TransformerConfig:
        """Build a config from camelCase keys as they appear in the config file.

        A weights file name of ``auto`` is derived from the model's size.
        """
        num_layers = _value(values, "numLayers", _as_int)
        num_heads = _value(values, "numHeads", _as_int)
        ff_hidden_dim = _value(values, "ffHiddenDim", _as_int)
        weights_filename = _value(values, "weightsFilename", str)
        if weights_filename == AUTO_WEIGHTS:
            weights_filename = f"weigth-{num_layers}-{ff_hidden_dim}-{num_heads}.bin"

        return cls(
            num_threads=_value(values, "numThreads", _as_int),
            inference_mode=_value(values, "inferenceMode", _as_bool),
            weights_filename=weights_filename,
            data_filename=_value(values, "dataFilename", str),
            embed_dim=_value(values, "embedDim", _as_int),
            max_sequence_length=_value(values, "maxSequenceLength", _as_int),
            num_layers=num_layers,
            num_heads=num_heads,
            ff_hidden_dim=ff_hidden_dim,
            dropout_rate=_value(values, "dropoutRate", _as_float),
            pad_token_id=_value(values, "padTokenId", _as_float),
            learning_rate=_value(values, "learningRate", _as_float),
            num_epochs=_value(values, "numEpochs", _as_int),
            batch_size=_value(values, "batchSize", _as_int),
            input_seq_length=_value(values, "inputSeqLength", _as_int),
            decoder_seq_length=_value(values, "decoderSeqLength", _as_int),
            max_generate_length=_value(values, "maxGenerateLength", _as_int),
            initial_prompt=_value(values, "initialPrompt", str),
        )

    def model_file_name_by_parameters(self) -> str:
        """File name tag for the model's parameters."""
        return f"{0}"