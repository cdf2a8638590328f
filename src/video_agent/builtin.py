# builtin.py
# The video pipeline's capabilities: analysis, script, images, voice,
# render, quality check and optimization.
#
# Engines never call these classes directly; build_registry() registers them
# and everything goes through CapabilityRegistry.dispatch(). When a backend
# endpoint or render command is configured the work is delegated to it,
# otherwise each capability produces deterministic local artifact paths.

import os
import shlex
from typing import Any

from video_agent.backends import HttpBackend, run_command
from video_agent.capabilities import Capability, CapabilityRegistry
from video_agent.config import Settings
from video_agent.context import OrchestrationContext
from video_agent.models import CapabilityResult, ParameterSchema, ParameterSpec

SCRIPT_SLOT = "script"
FINAL_VIDEO = "final_video"

CONTENT_TYPES = ["educational", "commercial", "entertainment", "news"]


def _task_id(context: OrchestrationContext | None) -> str:
    return context.task_id if context is not None else "adhoc"


def _classify(text: str) -> str:
    lowered = text.lower()
    if any(word in lowered for word in ("product", "brand", "sale", "advert", "promo")):
        return "commercial"
    if any(word in lowered for word in ("news", "report", "breaking", "today")):
        return "news"
    if any(word in lowered for word in ("funny", "story", "game", "comedy", "music")):
        return "entertainment"
    return "educational"


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------


class ContentAnalysis(Capability):
    name = "analyze_content"
    description = (
        "Analyze user input to understand content requirements and suggest "
        "optimal processing strategy"
    )
    parameters = ParameterSchema(
        properties={
            "user_text": ParameterSpec(type="string", description="User's original request text"),
            "context": ParameterSpec(type="object", description="Additional context information"),
        },
        required=["user_text"],
    )
    state_slot = "content_analysis"

    def invoke(self, params: dict[str, Any], context: OrchestrationContext | None) -> CapabilityResult:
        text = params["user_text"].strip()
        if not text:
            return CapabilityResult(success=False, error="No user text provided.")

        content_type = _classify(text)
        words = len(text.split())
        analysis = {
            "content_type": content_type,
            "complexity": "high" if words > 60 else "medium" if words > 15 else "low",
            "target_audience": "general",
            "estimated_duration": min(180, max(30, words * 3)),
            "key_topics": ["main_concept", "examples", "conclusion"],
            "recommended_style": "professional" if content_type != "entertainment" else "playful",
            "quality_requirements": {"accuracy": 0.9, "clarity": 0.85, "engagement": 0.8},
        }
        return CapabilityResult(
            success=True,
            data=analysis,
            suggested_next=["generate_script"],
            message=f"Classified request as {content_type} content",
            metadata={"text_length": len(text)},
        )


# ---------------------------------------------------------------------------
# Script
# ---------------------------------------------------------------------------


class ScriptGeneration(Capability):
    name = "generate_script"
    description = "Generate video script based on user requirements and content analysis"
    parameters = ParameterSchema(
        properties={
            "content_type": ParameterSpec(
                type="string",
                description="Type of content (educational, commercial, entertainment)",
                enum=CONTENT_TYPES,
            ),
            "target_audience": ParameterSpec(
                type="string", description="Target audience for the video", default="general"
            ),
            "style": ParameterSpec(type="string", description="Video style and tone", default="professional"),
            "duration": ParameterSpec(type="number", description="Target video duration in seconds", default=60),
            "key_points": ParameterSpec(type="array", description="Key points to cover in the script"),
            "topic": ParameterSpec(type="string", description="Subject of the video"),
        },
        required=["content_type", "target_audience"],
    )
    state_slot = SCRIPT_SLOT

    def __init__(self, output_dir: str = "uploads", backend: HttpBackend | None = None) -> None:
        self._output_dir = output_dir
        self._backend = backend

    def invoke(self, params: dict[str, Any], context: OrchestrationContext | None) -> CapabilityResult:
        topic = params.get("topic") or (context.request.text if context is not None else "")
        if self._backend is not None:
            script = self._backend.generate({**params, "topic": topic})
        else:
            points = params.get("key_points") or ["introduction", "main_content", "conclusion"]
            per_shot = max(3, int(params["duration"] // max(1, len(points))))
            script = {
                "title": f"{topic.strip().rstrip('.')[:60] or 'Untitled'} ({params['content_type']})",
                "structure": list(points),
                "estimated_duration": params["duration"],
                "shots": [
                    {
                        "id": i + 1,
                        "scene": str(point),
                        "image_prompt": f"{params['style']} illustration of {point}",
                        "voiceover": f"Now, {point}.",
                        "duration": per_shot,
                    }
                    for i, point in enumerate(points)
                ],
            }

        script.setdefault("style", params["style"])
        path = os.path.join(self._output_dir, "scripts", f"script_{_task_id(context)}.json")
        return CapabilityResult(
            success=True,
            data=script,
            resources={"script_data": path},
            suggested_next=["generate_images", "generate_voice"],
            message=f"Generated script with {len(script.get('shots', []))} shots",
        )


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------


class ImageGeneration(Capability):
    name = "generate_images"
    description = "Generate images for video scenes using AI image generation"
    parameters = ParameterSchema(
        properties={
            "prompts": ParameterSpec(type="array", description="Array of image generation prompts"),
            "style": ParameterSpec(
                type="string", description="Image style (realistic, cartoon, artistic, etc.)", default="realistic"
            ),
            "resolution": ParameterSpec(
                type="string",
                description="Image resolution",
                enum=["1024x1024", "1920x1080", "512x512"],
                default="1024x1024",
            ),
            "count": ParameterSpec(type="number", description="Number of images per prompt", default=1),
        },
        required=["prompts"],
    )
    state_slot = "images"

    def __init__(self, output_dir: str = "uploads", backend: HttpBackend | None = None) -> None:
        self._output_dir = output_dir
        self._backend = backend

    def invoke(self, params: dict[str, Any], context: OrchestrationContext | None) -> CapabilityResult:
        prompts = [str(p) for p in params["prompts"]]
        if not prompts:
            return CapabilityResult(success=False, error="No image prompts provided.")

        images: list[dict[str, Any]] = []
        for i, prompt in enumerate(prompts):
            if self._backend is not None:
                body = self._backend.generate(
                    {"prompt": prompt, "style": params["style"], "resolution": params["resolution"]}
                )
                url = str(body.get("url") or body.get("path") or "")
            else:
                url = os.path.join(self._output_dir, "images", f"{_task_id(context)}_shot_{i + 1}.jpg")
            images.append({"id": f"img_{i + 1}", "prompt": prompt, "url": url, "style": params["style"]})

        return CapabilityResult(
            success=True,
            data={"images": images, "count": len(images)},
            resources={f"image_{i + 1}": image["url"] for i, image in enumerate(images)},
            suggested_next=["generate_voice", "check_quality"],
            message=f"Generated {len(images)} images successfully",
        )


# ---------------------------------------------------------------------------
# Voice
# ---------------------------------------------------------------------------


class VoiceGeneration(Capability):
    name = "generate_voice"
    description = "Generate voice narration for video content using text-to-speech"
    parameters = ParameterSchema(
        properties={
            "text": ParameterSpec(type="string", description="Text content to convert to speech"),
            "voice_type": ParameterSpec(
                type="string", description="Type of voice to use", enum=["male", "female", "neutral"], default="neutral"
            ),
            "language": ParameterSpec(type="string", description="Language for the voice", default="en-US"),
            "speed": ParameterSpec(type="number", description="Speech speed (0.5 to 2.0)", default=1.0),
            "emotion": ParameterSpec(
                type="string",
                description="Emotional tone of the voice",
                enum=["neutral", "friendly", "professional", "enthusiastic"],
                default="neutral",
            ),
        },
        required=["text"],
    )
    state_slot = "audio"

    def __init__(self, output_dir: str = "uploads", backend: HttpBackend | None = None) -> None:
        self._output_dir = output_dir
        self._backend = backend

    def invoke(self, params: dict[str, Any], context: OrchestrationContext | None) -> CapabilityResult:
        text = params["text"]
        if not 0.5 <= params["speed"] <= 2.0:
            return CapabilityResult(success=False, error=f"Speech speed {params['speed']} is outside 0.5–2.0.")

        if self._backend is not None:
            body = self._backend.generate(dict(params))
            audio_file = str(body.get("audio_file") or body.get("path") or "")
        else:
            audio_file = os.path.join(self._output_dir, "audio", f"voice_{_task_id(context)}.mp3")

        return CapabilityResult(
            success=True,
            data={
                "audio_file": audio_file,
                "duration": round(len(text.split()) / (2.5 * params["speed"]), 1),
                "voice_type": params["voice_type"],
                "text_length": len(text),
            },
            resources={"narration": audio_file},
            suggested_next=["render_video", "check_quality"],
            message="Generated narration successfully",
        )


# ---------------------------------------------------------------------------
# Render
# ---------------------------------------------------------------------------


class VideoRender(Capability):
    name = "render_video"
    description = "Render final video from script, images, and audio components"
    parameters = ParameterSchema(
        properties={
            "script": ParameterSpec(type="object", description="Video script with timing information"),
            "images": ParameterSpec(type="array", description="Array of image assets"),
            "audio": ParameterSpec(type="object", description="Audio narration data"),
            "effects": ParameterSpec(type="array", description="Visual effects to apply"),
            "output_format": ParameterSpec(
                type="string", description="Output video format", enum=["mp4", "avi", "mov"], default="mp4"
            ),
        },
    )
    terminal = True
    state_slot = FINAL_VIDEO
    artifact_field = "video_file"
    artifact_resource = FINAL_VIDEO

    def __init__(self, output_dir: str = "uploads", command: str | None = None, timeout: float = 600.0) -> None:
        self._output_dir = output_dir
        self._command = command
        self.timeout = timeout

    def invoke(self, params: dict[str, Any], context: OrchestrationContext | None) -> CapabilityResult:
        script = params.get("script")
        if script is None and context is not None:
            script = context.get_state(SCRIPT_SLOT)
            if script is None and context.get_state("shots"):
                script = {"shots": context.get_state("shots")}
        if not script:
            return CapabilityResult(success=False, error="No script data available for rendering.")

        task_id = _task_id(context)
        video_file = os.path.join(self._output_dir, "videos", f"final_{task_id}.{params['output_format']}")
        if self._command:
            args = [
                part.format(output=video_file, task_id=task_id, output_dir=self._output_dir)
                for part in shlex.split(self._command)
            ]
            run_command(args, timeout=self.timeout)

        shots = script.get("shots") or []
        return CapabilityResult(
            success=True,
            data={
                "video_file": video_file,
                "duration": sum(int(shot.get("duration", 0)) for shot in shots if isinstance(shot, dict)),
                "resolution": "1920x1080",
                "format": params["output_format"],
            },
            resources={FINAL_VIDEO: video_file},
            message="Video rendered successfully",
        )


# ---------------------------------------------------------------------------
# Quality
# ---------------------------------------------------------------------------


class QualityCheck(Capability):
    name = "check_quality"
    description = "Analyze and validate the quality of generated content"
    parameters = ParameterSchema(
        properties={
            "content_type": ParameterSpec(
                type="string", description="Type of content to check", enum=["script", "images", "audio", "video"]
            ),
            "content_data": ParameterSpec(type="object", description="Content data to analyze"),
            "quality_criteria": ParameterSpec(type="array", description="Specific quality criteria to check"),
        },
        required=["content_type"],
    )
    replan_metric = "quality_score"
    state_slot = "quality_check"

    # What each content type needs to be present in the context.
    _EXPECTS = {
        "script": ("script_data",),
        "images": ("image_1",),
        "audio": ("narration",),
        "video": ("script_data", "image_1", "narration", FINAL_VIDEO),
    }

    def __init__(self, threshold: float = 0.7) -> None:
        self.replan_threshold = threshold

    def invoke(self, params: dict[str, Any], context: OrchestrationContext | None) -> CapabilityResult:
        expected = self._EXPECTS[params["content_type"]]
        resources = context.resources if context is not None else {}
        present = [key for key in expected if resources.get(key)]
        if params.get("content_data"):
            present = list(expected)

        coverage = len(present) / len(expected)
        score = round(0.5 + 0.45 * coverage, 2)
        issues = [f"missing {key}" for key in expected if key not in present]

        suggested: list[str] = []
        if score < 0.8:
            suggested.append("optimize_content")
        elif not resources.get(FINAL_VIDEO):
            suggested.append("render_video")

        return CapabilityResult(
            success=True,
            data={
                "quality_score": score,
                "quality_scores": {"overall": score, "completeness": round(coverage, 2)},
                "issues": issues,
                "recommendations": ["Consider adding more visual elements"] if issues else [],
                "passed": score >= self.replan_threshold,
            },
            suggested_next=suggested,
            message=f"Quality check completed with score: {score:.2f}",
        )


# ---------------------------------------------------------------------------
# Optimization
# ---------------------------------------------------------------------------


class ContentOptimization(Capability):
    name = "optimize_content"
    description = "Optimize and improve content quality after a failed or weak quality check"
    parameters = ParameterSchema(
        properties={
            "target": ParameterSpec(
                type="string",
                description="Which artifact to improve",
                enum=["script", "images", "audio", "video"],
                default="video",
            ),
            "improvements": ParameterSpec(type="array", description="Specific improvements to apply"),
        },
    )
    state_slot = "optimization"

    def __init__(self, output_dir: str = "uploads") -> None:
        self._output_dir = output_dir

    def invoke(self, params: dict[str, Any], context: OrchestrationContext | None) -> CapabilityResult:
        applied = [str(i) for i in params.get("improvements") or []] or [
            "Enhanced color correction",
            "Improved audio normalization",
            "Added smooth transitions",
        ]
        path = os.path.join(self._output_dir, "videos", f"optimized_{_task_id(context)}.mp4")
        return CapabilityResult(
            success=True,
            data={"optimizations_applied": applied, "target": params["target"], "new_quality_score": 0.95},
            resources={f"optimized_{params['target']}": path},
            message="Content optimization completed successfully",
        )


# ---------------------------------------------------------------------------
# Registry wiring
# ---------------------------------------------------------------------------


def build_registry(settings: Settings) -> CapabilityRegistry:
    """Register every built-in capability, wiring backends from settings."""

    def _backend(endpoint: str | None) -> HttpBackend | None:
        return HttpBackend(endpoint, timeout=settings.dispatch_timeout) if endpoint else None

    registry = CapabilityRegistry(default_timeout=settings.dispatch_timeout)
    registry.register(ContentAnalysis())
    registry.register(ScriptGeneration(settings.output_dir, _backend(settings.script_endpoint)))
    registry.register(ImageGeneration(settings.output_dir, _backend(settings.image_endpoint)))
    registry.register(VoiceGeneration(settings.output_dir, _backend(settings.voice_endpoint)))
    registry.register(QualityCheck(settings.quality_threshold))
    registry.register(VideoRender(settings.output_dir, settings.render_command, settings.dispatch_timeout))
    registry.register(ContentOptimization(settings.output_dir))
    return registry
