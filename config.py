"""Application configuration."""

# Playback rate
DEFAULT_TARGET_FPS = 24
MIN_TARGET_FPS = 12
MAX_TARGET_FPS = 100

# Neural path
MODEL_PATH = 'models/fsrcnn_x2.onnx'
SCALE_FACTOR = 2              # Fixed by the loaded model
INFERENCE_DEADLINE_MS = 250
INFERENCE_WORKERS = 2         # Engine calls allowed in flight (late ones included)
ONNX_PROVIDERS = ['CUDAExecutionProvider', 'CPUExecutionProvider']

# Temporal buffering and metrics
TEMPORAL_BUFFER_CAPACITY = 3
ROLLING_WINDOW_SIZE = 30
FPS_WINDOW_S = 1.0

# Optional self-throttling of inference
THROTTLE_INFERENCE = False
THROTTLE_FACTOR = 1.0         # Multiplier on rolling average inference time

# Quality metrics
PSNR_IDENTICAL_DB = 99.0
SSIM_C1 = (0.01 * 255) ** 2
SSIM_C2 = (0.03 * 255) ** 2

# Simulator defaults
SIM_WIDTH = 160
SIM_HEIGHT = 90
SIM_DURATION_S = 10.0

# UI settings
UI_REFRESH_RATE_HZ = 60.0     # Presentation callback rate
UI_METRICS_RATE_HZ = 4.0
MAX_PLOT_POINTS = 120
ERROR_LOG_INTERVAL_S = 2.0

# Colors for metric traces
TRACE_COLORS = {
    'inference': '#1f77b4',   # blue
    'total': '#ff7f0e',       # orange
    'psnr_neural': '#2ca02c', # green
    'psnr_classical': '#7f7f7f',  # gray
}

# Player palette (RGBA, 0-1)
UI_THEME = {
    'window_bg': (0.09, 0.10, 0.12, 1.0),
    'card_bg': (0.14, 0.15, 0.18, 1.0),
    'card_border': (0.24, 0.26, 0.31, 1.0),
    'text_primary': (0.92, 0.93, 0.95, 1.0),
    'text_secondary': (0.62, 0.65, 0.71, 1.0),
    'play_btn': (0.16, 0.50, 0.86, 1.0),
    'pause_btn': (0.36, 0.39, 0.46, 1.0),
    'stop_btn': (0.80, 0.30, 0.27, 1.0),
    'idle': ((0.30, 0.32, 0.37, 1.0), (0.40, 0.43, 0.49, 1.0)),
    'neural': ((0.18, 0.52, 0.36, 1.0), (0.25, 0.64, 0.45, 1.0)),
    'fallback': ((0.72, 0.36, 0.14, 1.0), (0.88, 0.47, 0.20, 1.0)),
    'figure_bg': (0.14, 0.15, 0.18, 1.0),
    'axis_text': (0.78, 0.80, 0.84, 1.0),
    'grid': (0.26, 0.28, 0.33, 1.0),
}
