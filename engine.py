"""ONNX Runtime adapter for luma super-resolution models (FSRCNN-style, [1, 1, H, W] in and out)."""

import logging
import os
from typing import Optional, Sequence

import numpy as np
import onnxruntime as ort

from config import ONNX_PROVIDERS
from pipeline.errors import EngineLoadError, InferenceRunError
from pipeline.types import EngineHandle


class OnnxInferenceEngine:
    """Loads an ONNX model and runs it. Backend setup lives here, not in the pipeline."""

    def __init__(
        self,
        providers: Sequence[str] = ONNX_PROVIDERS,
        num_threads: Optional[int] = None,
    ):
        self.providers = list(providers)
        self.num_threads = num_threads or os.cpu_count() or 4

    def _select_providers(self) -> list:
        available = set(ort.get_available_providers())
        selected = [p for p in self.providers if p in available]
        return selected or ["CPUExecutionProvider"]

    def load(self, model_ref: str) -> EngineHandle:
        if not os.path.exists(model_ref):
            raise EngineLoadError(f"Model file not found: {model_ref}")

        options = ort.SessionOptions()
        options.intra_op_num_threads = self.num_threads
        options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL

        try:
            session = ort.InferenceSession(
                model_ref,
                sess_options=options,
                providers=self._select_providers(),
            )
        except Exception as exc:
            raise EngineLoadError(f"Could not load ONNX model {model_ref}: {exc}") from exc

        inputs = session.get_inputs()
        if len(inputs) != 1:
            raise EngineLoadError(f"Expected a single-input model, got {len(inputs)} inputs")

        backend = session.get_providers()[0]
        logging.info(f"ONNX session ready: {model_ref} on {backend} ({self.num_threads} threads)")
        return EngineHandle(
            model_ref=model_ref,
            backend=backend,
            session=session,
            input_name=inputs[0].name,
        )

    def run(self, handle: EngineHandle, tensor: np.ndarray) -> np.ndarray:
        try:
            outputs = handle.session.run(None, {handle.input_name: tensor.astype(np.float32, copy=False)})
        except Exception as exc:
            raise InferenceRunError(str(exc)) from exc
        return outputs[0]
