"""Catalog of generation endpoints offered in the generate panel.

Each ``ApiInfo`` describes one queue endpoint: which media category it
produces, which reference assets it accepts, and how the generic form fields
map onto the endpoint's own input keys. ``build_input`` turns the form state
into the request body sent to the queue.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from ..core.state import GenerateData

# form field holding each kind of reference asset
ASSET_KEY_MAP = {"image": "image_url", "video": "video_url", "audio": "audio_url"}
# GenerateData attribute the asset is read from
ASSET_FORM_FIELD = {"image": "image", "video": "video_url", "audio": "audio_url"}

IMAGE_SIZE_MAP = {
    "16:9": "landscape_16_9",
    "9:16": "portrait_16_9",
    "1:1": "square_hd",
}


@dataclass(frozen=True)
class InputAsset:
    type: str  # image | video | audio
    key: Optional[str] = None

    @property
    def input_key(self) -> str:
        return self.key or ASSET_KEY_MAP[self.type]


@dataclass(frozen=True)
class ApiInfo:
    endpoint_id: str
    label: str
    category: str  # image | video | music | voiceover
    description: str = ""
    input_map: dict[str, str] = field(default_factory=dict)
    input_assets: tuple[InputAsset, ...] = ()
    initial_input: dict[str, Any] = field(default_factory=dict)


def _assets(*items: Union[str, InputAsset]) -> tuple[InputAsset, ...]:
    return tuple(i if isinstance(i, InputAsset) else InputAsset(i) for i in items)


AVAILABLE_ENDPOINTS: tuple[ApiInfo, ...] = (
    ApiInfo("fal-ai/flux/dev", "Flux Dev", "image", "Generate an image from a text prompt"),
    ApiInfo("fal-ai/flux/schnell", "Flux Schnell", "image", "Fast image generation"),
    ApiInfo("fal-ai/flux-pro/v1.1-ultra", "Flux Pro 1.1 Ultra", "image", "High resolution images"),
    ApiInfo(
        "fal-ai/stable-diffusion-v35-large",
        "Stable Diffusion 3.5 Large",
        "image",
        "Image quality, typography, complex prompt understanding",
    ),
    ApiInfo(
        "fal-ai/minimax/video-01-live",
        "Minimax Video 01 Live",
        "video",
        "High quality video, realistic motion and physics",
        input_assets=_assets("image"),
    ),
    ApiInfo(
        "fal-ai/hunyuan-video",
        "Hunyuan",
        "video",
        "High visual quality, motion diversity and text alignment",
    ),
    ApiInfo(
        "fal-ai/kling-video/v1.5/pro",
        "Kling 1.5 Pro",
        "video",
        "High quality video",
        input_assets=_assets("image"),
    ),
    ApiInfo(
        "fal-ai/luma-dream-machine",
        "Luma Dream Machine 1.5",
        "video",
        "High quality video",
        input_assets=_assets("image"),
    ),
    ApiInfo(
        "fal-ai/minimax-music",
        "Minimax Music",
        "music",
        "Musical compositions guided by a reference track",
        input_assets=_assets(InputAsset("audio", "reference_audio_url")),
    ),
    ApiInfo(
        "fal-ai/mmaudio-v2",
        "MMAudio V2",
        "video",
        "Synchronized audio for a video and/or text prompt",
        input_assets=_assets("video"),
    ),
    ApiInfo(
        "fal-ai/sync-lipsync",
        "sync.so lipsync 1.8.0",
        "video",
        "Lipsync animation driven by an audio track",
        input_assets=_assets("video", "audio"),
    ),
    ApiInfo("fal-ai/stable-audio", "Stable Audio", "music", "Music creation from a prompt"),
    ApiInfo(
        "fal-ai/playht/tts/v3",
        "PlayHT TTS v3",
        "voiceover",
        "Fluent and faithful speech with flow matching",
        input_map={"prompt": "input"},
        initial_input={"voice": "Dexter (English (US)/American)"},
    ),
    ApiInfo(
        "fal-ai/playai/tts/dialog",
        "PlayAI Text-to-Speech Dialog",
        "voiceover",
        "Multi-speaker dialogue",
        input_map={"prompt": "input"},
        initial_input={
            "voices": [
                {"voice": "Jennifer (English (US)/American)", "turn_prefix": "Speaker 1: "},
                {"voice": "Furio (English (IT)/Italian)", "turn_prefix": "Speaker 2: "},
            ]
        },
    ),
    ApiInfo(
        "fal-ai/f5-tts",
        "F5 TTS",
        "voiceover",
        "Voice cloning from a reference clip",
        input_map={"prompt": "gen_text"},
        initial_input={
            "ref_audio_url": "https://github.com/SWivid/F5-TTS/raw/21900ba97d5020a5a70bcc9a0575dc7dec5021cb/tests/ref_audio/test_en_1_ref_short.wav",
            "ref_text": "Some call me nature, others call me mother nature.",
            "model_type": "F5-TTS",
            "remove_silence": True,
        },
    ),
)

# metadata extraction endpoint used by RemoteMetadataExtractor
METADATA_ENDPOINT_ID = "fal-ai/ffmpeg-api/metadata"


def endpoints_for(category: str) -> list[ApiInfo]:
    return [e for e in AVAILABLE_ENDPOINTS if e.category == category]


def find_endpoint(endpoint_id: str) -> Optional[ApiInfo]:
    for endpoint in AVAILABLE_ENDPOINTS:
        if endpoint.endpoint_id == endpoint_id:
            return endpoint
    return None


def map_input_key(input: dict[str, Any], input_map: dict[str, str]) -> dict[str, Any]:
    """Rename keys per ``input_map``; the first value written to a key wins."""
    mapped: dict[str, Any] = {}
    for key, value in input.items():
        new_key = input_map.get(key, key)
        if new_key not in mapped:
            mapped[new_key] = value
    return mapped


def resolve_endpoint_id(api_info: ApiInfo, data: GenerateData) -> str:
    # video models take a separate image-to-video route when given a start image
    if api_info.category == "video" and data.image and any(
        a.type == "image" for a in api_info.input_assets
    ):
        return f"{api_info.endpoint_id}/image-to-video"
    return api_info.endpoint_id


def build_input(
    api_info: ApiInfo,
    data: GenerateData,
    aspect_ratio: str = "16:9",
) -> dict[str, Any]:
    """Request body for ``api_info`` from the generate form state."""
    body: dict[str, Any] = {"prompt": data.prompt}
    if api_info.category == "image":
        body["image_size"] = IMAGE_SIZE_MAP.get(aspect_ratio, "landscape_16_9")
    elif api_info.category == "video":
        body["aspect_ratio"] = aspect_ratio
    elif api_info.category == "music" and data.duration:
        body["seconds_total"] = data.duration
    if api_info.category == "voiceover" and data.voice:
        body["voice"] = data.voice
    for asset in api_info.input_assets:
        value = getattr(data, ASSET_FORM_FIELD[asset.type])
        if value:
            body[asset.input_key] = value
    merged = {**api_info.initial_input, **body}
    if "voice" in api_info.initial_input and not data.voice:
        merged["voice"] = api_info.initial_input["voice"]
    return map_input_key(merged, api_info.input_map)


__all__ = [
    "ASSET_KEY_MAP",
    "IMAGE_SIZE_MAP",
    "METADATA_ENDPOINT_ID",
    "InputAsset",
    "ApiInfo",
    "AVAILABLE_ENDPOINTS",
    "endpoints_for",
    "find_endpoint",
    "map_input_key",
    "resolve_endpoint_id",
    "build_input",
]
