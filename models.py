# models.py
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class CapabilityClass(Enum):
    TEXT = "text"
    IMAGE = "image"


class Provider(Enum):
    GEMINI = "gemini"  # Generative Language API, generateContent
    VERTEX_GEMINI = "vertex_gemini"  # Vertex AI, generateContent
    IMAGEN = "imagen"  # Vertex AI, predict
    LEGACY_GEMINI = "legacy_gemini"  # Generative Language API, generateImage


class OutputModality(Enum):
    TEXT = "TEXT"
    IMAGE = "IMAGE"
    TEXT_AND_IMAGE = "TEXT_AND_IMAGE"

    @classmethod
    def parse(cls, value, default=None):
        """
        Accepts the spellings used by the UI and persisted configs:
        "text", "image", "TEXT+IMAGE", "BOTH", "image_and_text", "TEXT_AND_IMAGE".
        Returns `default` for None/empty input.
        """
        if value is None or value == "":
            return default
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().upper()
        if normalized in ("TEXT+IMAGE", "BOTH", "IMAGE_AND_TEXT", "TEXT_AND_IMAGE"):
            return cls.TEXT_AND_IMAGE
        if normalized == "TEXT":
            return cls.TEXT
        if normalized == "IMAGE":
            return cls.IMAGE
        raise ValueError(f"Unknown output modality: {value}")

    @property
    def wants_text(self):
        return self in (OutputModality.TEXT, OutputModality.TEXT_AND_IMAGE)

    @property
    def wants_image(self):
        return self in (OutputModality.IMAGE, OutputModality.TEXT_AND_IMAGE)

    @property
    def response_modalities(self):
        if self is OutputModality.TEXT_AND_IMAGE:
            return ["TEXT", "IMAGE"]
        return [self.value]


@dataclass(frozen=True)
class ModelDescriptor:
    model_id: str
    capability_class: CapabilityClass
    provider: Provider
    endpoint_template: str
    vendor_model: str
    route: str
    default_modality: OutputModality = OutputModality.TEXT

    def endpoint(self, project: str, location: str) -> str:
        return self.endpoint_template.format(
            model=self.vendor_model, project=project, location=location
        )

    @property
    def is_image_capable(self):
        return self.capability_class is CapabilityClass.IMAGE


@dataclass
class GenerationRequest:
    """Canonical, provider-agnostic request. Built fresh per call."""

    text: str
    system_instruction: Optional[str] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    max_output_tokens: Optional[int] = None
    output_modality: OutputModality = OutputModality.TEXT
    aspect_ratio: Optional[str] = None
    sample_count: Optional[int] = None


@dataclass
class GenerationResult:
    text: Optional[str] = None
    image_base64: Optional[str] = None

    def to_dict(self):
        result = {}
        if self.text is not None:
            result["text"] = self.text
        if self.image_base64 is not None:
            result["imageBase64"] = self.image_base64
        return result


@dataclass(frozen=True)
class AccessToken:
    token: str
    expires_at_epoch_ms: int


@dataclass
class ModelConfig:
    """Persisted per-model configuration (Firestore `modelConfigs/{modelId}`)."""

    model_id: str
    display_name: str = ""
    description: str = ""
    system_prompt: str = ""
    temperature: Optional[float] = 0.7
    top_p: Optional[float] = 0.95
    max_output_tokens: Optional[int] = 8192
    output_type: str = "TEXT"
    aspect_ratio: str = "1:1"
    sample_count: int = 1
    safety_settings: dict = field(default_factory=dict)
    enabled: bool = True
    updated_at: Optional[int] = None


@dataclass
class PipelineConfig:
    """Prompt pipeline: an optional text model that rewrites the prompt first."""

    enabled: bool = False
    pre_model: Optional[str] = None
    instructions: str = ""
    extra_prompt: str = ""
    temperature: float = 0.4
    top_p: float = 0.9
