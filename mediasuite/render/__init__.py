from mediasuite.render.audio_mixer import AudioMixer
from mediasuite.render.pipeline import RenderPipeline
from mediasuite.render.preprocess import ClipPreprocessor
from mediasuite.render.runner import ProcessRunner
from mediasuite.render.transitions import TransitionAssembler

__all__ = [
    "RenderPipeline",
    "ClipPreprocessor",
    "TransitionAssembler",
    "AudioMixer",
    "ProcessRunner",
]
