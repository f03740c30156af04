"""UI components - Kivy widgets with side-by-side upscaling views and metric trends."""

from collections import deque

import numpy as np
from kivy.core.window import Window
from kivy.graphics import Color, Line, RoundedRectangle
from kivy.graphics.texture import Texture
from kivy.uix.boxlayout import BoxLayout
from kivy.uix.button import Button
from kivy.uix.image import Image
from kivy.uix.label import Label
from kivy.uix.screenmanager import Screen
from kivy.uix.scrollview import ScrollView
from kivy.uix.tabbedpanel import TabbedPanel, TabbedPanelItem

from config import MAX_PLOT_POINTS, TRACE_COLORS, UI_THEME

THEME = UI_THEME


def texture_from_rgba(pixels: np.ndarray, texture=None):
    """Upload (H, W, 4) uint8 pixels, reusing texture when the size matches."""
    height, width = pixels.shape[:2]
    if texture is None or texture.size != (width, height):
        texture = Texture.create(size=(width, height), colorfmt="rgba")
        # numpy rows run top-down, kivy textures bottom-up
        texture.flip_vertical()
    texture.blit_buffer(np.ascontiguousarray(pixels).tobytes(), colorfmt="rgba", bufferfmt="ubyte")
    return texture


def make_label(text, size_hint=(1, 1), font_size="13sp", bold=False, secondary=False, **kwargs):
    """Left-aligned label that wraps to its own size."""
    kwargs.setdefault("halign", "left")
    kwargs.setdefault("valign", "middle")
    kwargs.setdefault("color", THEME["text_secondary"] if secondary else THEME["text_primary"])
    label = Label(text=text, size_hint=size_hint, font_size=font_size, bold=bold, **kwargs)
    label.bind(size=lambda widget, size: setattr(widget, "text_size", size))
    return label


def make_button(text, rgba, size_hint=(1, 1), **kwargs):
    button = Button(text=text, size_hint=size_hint, bold=True, color=(1, 1, 1, 1), **kwargs)
    button.background_normal = ""
    button.background_down = ""
    button.background_color = rgba
    return button


class Card(BoxLayout):
    """BoxLayout drawn as a rounded panel; colors can change at runtime."""

    def __init__(self, bg=None, border=None, radius=10, **kwargs):
        super().__init__(**kwargs)
        self.radius = radius
        with self.canvas.before:
            self._bg_color = Color(*(bg or THEME["card_bg"]))
            self._bg = RoundedRectangle(pos=self.pos, size=self.size, radius=[radius] * 4)
            self._border_color = Color(*(border or THEME["card_border"]))
            self._border = Line(rounded_rectangle=(self.x, self.y, self.width, self.height, radius), width=1.1)
        self.bind(pos=self._redraw, size=self._redraw)

    def _redraw(self, *_args):
        self._bg.pos = self.pos
        self._bg.size = self.size
        self._border.rounded_rectangle = (self.x, self.y, self.width, self.height, self.radius)

    def set_colors(self, bg, border):
        self._bg_color.rgba = bg
        self._border_color.rgba = border


class MainScreen(Screen):
    """Main screen with classical/neural views, fallback indicator, metrics and event log."""

    def __init__(self, on_start=None, on_pause=None, on_stop=None, **kwargs):
        import matplotlib

        matplotlib.use("Agg")  # Non-interactive backend
        matplotlib.set_loglevel("warning")
        import matplotlib.pyplot as plt
        from matplotlib.backends.backend_agg import FigureCanvasAgg

        self._plt = plt
        self._FigureCanvasAgg = FigureCanvasAgg

        super().__init__(**kwargs)

        self.on_start_callback = on_start
        self.on_pause_callback = on_pause
        self.on_stop_callback = on_stop
        Window.clearcolor = THEME["window_bg"]

        # Trend data
        self.inference_ms = deque(maxlen=MAX_PLOT_POINTS)
        self.total_ms = deque(maxlen=MAX_PLOT_POINTS)
        self.psnr_neural = deque(maxlen=MAX_PLOT_POINTS)
        self.psnr_classical = deque(maxlen=MAX_PLOT_POINTS)

        self.paused = False
        self._textures = {}
        self._log_lines = deque(maxlen=1000)

        self._build_ui()

    # -------------------------------------------------------------------------
    # Layout Builders
    # -------------------------------------------------------------------------

    def _build_ui(self):
        root = BoxLayout(orientation="vertical", padding=12, spacing=10)
        root.add_widget(self._build_top_bar())
        root.add_widget(self._build_status_panel())
        root.add_widget(self._build_tabbed_panel())
        root.add_widget(self._build_bottom_panel())
        self.add_widget(root)

        self._init_graph_plot()
        self.update_metrics(None)

    def _build_top_bar(self):
        bar = Card(size_hint=(1, 0.10), spacing=14, padding=(12, 10))

        title_box = BoxLayout(orientation="vertical", size_hint=(0.34, 1), spacing=2)
        title_box.add_widget(make_label("Neural Video Upscaler", font_size="20sp", bold=True))
        title_box.add_widget(make_label("Synchronized super-resolution playback", secondary=True))

        playback_box = BoxLayout(orientation="vertical", size_hint=(0.36, 1), spacing=2)
        self.playback_label = make_label("FRAME: -- / -- | BACKEND: --", font_size="14sp", bold=True)
        self.counters_label = make_label("Neural: 0 | Fallback: 0 | Held: 0", secondary=True)
        playback_box.add_widget(self.playback_label)
        playback_box.add_widget(self.counters_label)

        controls = BoxLayout(size_hint=(0.30, 1), spacing=8)
        self.start_btn = make_button("Play", THEME["play_btn"], size_hint=(0.34, 1))
        self.pause_btn = make_button("Pause", THEME["pause_btn"], size_hint=(0.33, 1), disabled=True)
        self.stop_btn = make_button("Stop", THEME["stop_btn"], size_hint=(0.33, 1), disabled=True)
        self.start_btn.bind(on_press=lambda _btn: self._fire(self.on_start_callback))
        self.pause_btn.bind(on_press=lambda _btn: self._fire(self.on_pause_callback))
        self.stop_btn.bind(on_press=lambda _btn: self._fire(self.on_stop_callback))
        for button in (self.start_btn, self.pause_btn, self.stop_btn):
            controls.add_widget(button)

        bar.add_widget(title_box)
        bar.add_widget(playback_box)
        bar.add_widget(controls)
        return bar

    def _build_status_panel(self):
        bg, border = THEME["idle"]
        self.status_card = Card(bg=bg, border=border, size_hint=(1, 0.07), padding=(12, 6))
        self.status_label = make_label("Output: Idle", font_size="16sp", bold=True, color=(1, 1, 1, 1))
        self.status_card.add_widget(self.status_label)
        return self.status_card

    def _build_view(self, title):
        card = Card(orientation="vertical", spacing=4, padding=(8, 6))
        card.add_widget(make_label(title, size_hint=(1, 0.08), bold=True))
        image = Image(size_hint=(1, 0.92), fit_mode="contain")
        card.add_widget(image)
        return card, image

    def _build_tabbed_panel(self):
        panel = TabbedPanel(
            size_hint=(1, 0.57),
            do_default_tab=False,
            tab_height=32,
            tab_width=170,
            background_color=THEME["card_bg"],
        )

        compare_tab = TabbedPanelItem(text="Side by Side")
        views = BoxLayout(spacing=10, padding=6)
        classical_card, self.classical_image = self._build_view("Bicubic Upscale")
        neural_card, self.neural_image = self._build_view("Neural Upscale")
        views.add_widget(classical_card)
        views.add_widget(neural_card)
        compare_tab.add_widget(views)

        luma_tab = TabbedPanelItem(text="Neural Luma")
        luma_card, self.luma_image = self._build_view("Neural Luma (Y only)")
        luma_tab.add_widget(luma_card)

        graph_tab = TabbedPanelItem(text="Trend Graph")
        self.graph_fig, (self.timing_ax, self.psnr_ax) = self._plt.subplots(2, 1, figsize=(8, 4))
        self.graph_canvas = self._FigureCanvasAgg(self.graph_fig)
        self.graph_image = Image(fit_mode="contain")
        graph_tab.add_widget(self.graph_image)

        for tab in (compare_tab, luma_tab, graph_tab):
            panel.add_widget(tab)
        panel.default_tab = compare_tab
        return panel

    def _build_bottom_panel(self):
        bottom = BoxLayout(size_hint=(1, 0.26), spacing=10)

        readouts_card = Card(orientation="vertical", size_hint=(0.40, 1), spacing=6, padding=(10, 8))
        readouts_card.add_widget(make_label("Frame Metrics", size_hint=(1, 0.16), font_size="15sp", bold=True))
        self.readouts_label = make_label("", size_hint=(1, 0.84), valign="top", markup=True)
        readouts_card.add_widget(self.readouts_label)

        log_card = Card(orientation="vertical", size_hint=(0.60, 1), spacing=6, padding=(10, 8))
        log_card.add_widget(make_label("Playback Timeline", size_hint=(1, 0.16), font_size="15sp", bold=True))
        self._log_scroll = ScrollView(size_hint=(1, 0.84))
        self.log_label = Label(
            text="",
            size_hint_y=None,
            halign="left",
            valign="top",
            color=THEME["text_secondary"],
            font_size="12sp",
        )
        self.log_label.bind(texture_size=self._update_log_height)
        self._log_scroll.add_widget(self.log_label)
        log_card.add_widget(self._log_scroll)

        bottom.add_widget(readouts_card)
        bottom.add_widget(log_card)
        return bottom

    def _update_log_height(self, instance, value):
        instance.height = value[1]
        instance.text_size = (self._log_scroll.width - 10, None)

    # -------------------------------------------------------------------------
    # Frame Views
    # -------------------------------------------------------------------------

    def _show(self, key: str, image: Image, pixels):
        if pixels is None:
            return
        texture = texture_from_rgba(pixels, self._textures.get(key))
        self._textures[key] = texture
        image.texture = texture
        image.canvas.ask_update()

    def _set_status(self, text: str, palette: str):
        self.status_label.text = text
        self.status_card.set_colors(*THEME[palette])

    def update_frames(self, result):
        """Show the classical and neural outputs of one tick."""
        self._show("classical", self.classical_image, result.classical_frame)
        self._show("neural", self.neural_image, result.neural_frame)
        self._show("luma", self.luma_image, result.luma_preview)

        if result.used_fallback:
            self._set_status(f"Output: Bicubic fallback at {result.timestamp:.2f}s", "fallback")
        elif result.inference_skipped:
            self._set_status("Output: Neural (held from buffer)", "neural")
        else:
            self._set_status("Output: Neural", "neural")

        self.counters_label.text = (
            f"Neural: {result.neural_frames} | Fallback: {result.fallback_frames} | "
            f"Held: {result.held_frames}"
        )

    def update_playback_info(self, frame_index: int, total_frames: int, backend):
        frame_text = f"{frame_index + 1} / {total_frames}" if total_frames else "-- / --"
        self.playback_label.text = f"FRAME: {frame_text} | BACKEND: {(backend or '--').upper()}"

    def show_idle(self, text: str = "Output: Idle"):
        self._set_status(text, "idle")

    # -------------------------------------------------------------------------
    # Metrics
    # -------------------------------------------------------------------------

    def update_metrics(self, metrics):
        """Refresh readouts and trend graph from a MetricsSnapshot (or None)."""
        if metrics is None:
            self.readouts_label.text = "Waiting for playback..."
            return

        def fmt(value, pattern=".2f", unit=""):
            return "--" if value is None else f"{value:{pattern}}{unit}"

        self.readouts_label.text = "\n".join([
            f"[b]Playback FPS[/b]  source {metrics.fps_source} | neural {metrics.fps_neural}",
            f"[b]Avg ms[/b]  extract {metrics.avg_extraction_ms:.1f} | infer {metrics.avg_inference_ms:.1f} | "
            f"post {metrics.avg_postprocess_ms:.1f} | total {metrics.avg_total_ms:.1f}",
            f"[b]Last failed attempt[/b]  {fmt(metrics.last_failed_attempt_ms, '.1f', ' ms')}",
            f"[b]PSNR[/b]  neural {fmt(metrics.psnr_neural, '.2f', ' dB')} | "
            f"bicubic {fmt(metrics.psnr_classical, '.2f', ' dB')}",
            f"[b]SSIM[/b]  neural {fmt(metrics.ssim_neural, '.4f')} | bicubic {fmt(metrics.ssim_classical, '.4f')}",
        ])

        self.inference_ms.append(metrics.avg_inference_ms)
        self.total_ms.append(metrics.avg_total_ms)
        if metrics.psnr_neural is not None:
            self.psnr_neural.append(metrics.psnr_neural)
        if metrics.psnr_classical is not None:
            self.psnr_classical.append(metrics.psnr_classical)
        self._refresh_graph()

    def _style_axes(self, ax, ylabel):
        ax.set_facecolor(THEME["figure_bg"])
        ax.tick_params(colors=THEME["axis_text"], labelsize=8)
        ax.set_ylabel(ylabel, color=THEME["axis_text"])
        ax.grid(True, color=THEME["grid"], linewidth=0.8)
        for spine in ax.spines.values():
            spine.set_color(THEME["grid"])

    def _init_graph_plot(self):
        self.graph_fig.patch.set_facecolor(THEME["figure_bg"])
        self._style_axes(self.timing_ax, "Avg ms")
        self._style_axes(self.psnr_ax, "PSNR (dB)")
        self._draw_graph()

    def _refresh_graph(self):
        for ax, ylabel in ((self.timing_ax, "Avg ms"), (self.psnr_ax, "PSNR (dB)")):
            ax.clear()
            self._style_axes(ax, ylabel)

        self.timing_ax.plot(list(self.inference_ms), color=TRACE_COLORS["inference"], linewidth=1.6, label="Inference")
        self.timing_ax.plot(list(self.total_ms), color=TRACE_COLORS["total"], linewidth=1.4, label="Total")
        self.psnr_ax.plot(list(self.psnr_neural), color=TRACE_COLORS["psnr_neural"], linewidth=1.6, label="Neural")
        self.psnr_ax.plot(
            list(self.psnr_classical),
            color=TRACE_COLORS["psnr_classical"],
            linestyle="--",
            linewidth=1.4,
            label="Bicubic",
        )
        for ax in (self.timing_ax, self.psnr_ax):
            ax.legend(loc="upper right", fontsize="x-small", facecolor=THEME["figure_bg"], labelcolor=THEME["axis_text"])

        self._draw_graph()

    def _draw_graph(self):
        self.graph_fig.tight_layout(pad=1.5)
        self.graph_canvas.draw()
        self._show("graph", self.graph_image, np.asarray(self.graph_canvas.buffer_rgba()))

    # -------------------------------------------------------------------------
    # Controls
    # -------------------------------------------------------------------------

    def _fire(self, callback):
        if callback:
            callback()

    def set_controls(self, playing: bool, paused: bool = False):
        self.start_btn.disabled = playing
        self.pause_btn.disabled = not playing
        self.stop_btn.disabled = not playing
        self.paused = paused
        self.pause_btn.text = "Resume" if paused else "Pause"

    def reset_views(self):
        for trace in (self.inference_ms, self.total_ms, self.psnr_neural, self.psnr_classical):
            trace.clear()
        self._refresh_graph()
        self.update_metrics(None)
        self.counters_label.text = "Neural: 0 | Fallback: 0 | Held: 0"

    # -------------------------------------------------------------------------
    # Event Log
    # -------------------------------------------------------------------------

    def append_log(self, text: str):
        """Append text to event log and auto-scroll to bottom."""
        self._log_lines.extend(text.splitlines(keepends=True))
        self.log_label.text = "".join(self._log_lines)
        self._log_scroll.scroll_y = 0
