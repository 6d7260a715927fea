"""
Lineboil — Live Preview Window

pygame window that plays a FrameStore through a PlaybackScheduler.
Timers are driven from the window's own loop (LoopTimerQueue), so all
drawing stays on the main thread.

Hotkeys:
  Space      = play/pause
  Left/Right = seed -1 / +1 (regenerates)
  Up/Down    = jitter +0.5 / -0.5 (regenerates)
  +/-        = speed +1 / -1 fps (no regeneration)
  Esc / Q    = quit
"""

import time

import numpy as np

try:
    import pygame
except ImportError:
    pygame = None

from core.playback import LoopTimerQueue, PlaybackScheduler

CHECKER_SIZE = 8
CHECKER_LIGHT = 255
CHECKER_DARK = 200


def composite_on_checkerboard(frame: np.ndarray, cell: int = CHECKER_SIZE) -> np.ndarray:
    """Flatten an RGBA frame over a grey checkerboard. Returns (H, W, 3) uint8."""
    h, w = frame.shape[:2]
    ys, xs = np.mgrid[0:h, 0:w]
    checker = np.where(((ys // cell) + (xs // cell)) % 2 == 0, CHECKER_LIGHT, CHECKER_DARK)
    checker = checker.astype(np.float32)[:, :, np.newaxis]

    rgb = frame[:, :, :3].astype(np.float32)
    alpha = frame[:, :, 3:4].astype(np.float32) / 255.0
    out = rgb * alpha + checker * (1.0 - alpha)
    return np.clip(out + 0.5, 0, 255).astype(np.uint8)


class PreviewWindow:
    """Native preview for `lineboil play`."""

    def __init__(self, store, zoom: int = 1, loop_fps: int = 60):
        if pygame is None:
            raise RuntimeError("pygame required for live preview. Install: pip install pygame")
        self.store = store
        self.zoom = max(1, int(zoom))
        self.loop_fps = loop_fps
        self.running = True
        self.timers = LoopTimerQueue(clock=time.monotonic)
        self.scheduler = PlaybackScheduler(
            self._render_to_screen,
            speed_fps=store.params.speed_fps,
            timer_factory=self.timers,
        )
        self._screen = None
        self._clock = None
        self._font = None
        self._last_index = 0

    def init_display(self, width: int, height: int):
        pygame.init()
        self._screen = pygame.display.set_mode((width * self.zoom, height * self.zoom))
        pygame.display.set_caption("Lineboil Preview")
        self._clock = pygame.time.Clock()
        self._font = pygame.font.SysFont("monospace", 14)

    def _render_to_screen(self, frame, index):
        """Display one frame scaled to the window."""
        if self._screen is None:
            return
        self._last_index = index
        flat = composite_on_checkerboard(frame)
        surface = pygame.surfarray.make_surface(flat.swapaxes(0, 1))
        if self.zoom != 1:
            surface = pygame.transform.scale(surface, self._screen.get_size())
        self._screen.blit(surface, (0, 0))
        self._draw_hud()
        pygame.display.flip()

    def _draw_hud(self):
        params = self.store.params
        state = "PLAY" if self.scheduler.playing else "PAUSE"
        text = (f"{state}  frame {self._last_index + 1}/{params.frame_count}  "
                f"seed {params.seed}  jitter {params.jitter_strength:.1f}")
        if self.store.busy:
            text += "  [regenerating]"
        label = self._font.render(text, True, (255, 255, 255), (0, 0, 0))
        self._screen.blit(label, (4, 4))

    def _update_params(self, **changes):
        params = self.store.params
        try:
            new_params = params.with_updates(**changes)
        except ValueError:
            return  # Out of range, ignore the keypress
        self.store.set_params(new_params)

    def _on_params(self, params):
        self.scheduler.set_speed(params.speed_fps)

    def _handle_events(self):
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                self.running = False
            elif event.type == pygame.KEYDOWN:
                params = self.store.params
                if event.key in (pygame.K_ESCAPE, pygame.K_q):
                    self.running = False
                elif event.key == pygame.K_SPACE:
                    self.scheduler.toggle()
                elif event.key == pygame.K_RIGHT:
                    self._update_params(seed=params.seed + 1)
                elif event.key == pygame.K_LEFT:
                    self._update_params(seed=params.seed - 1)
                elif event.key == pygame.K_UP:
                    self._update_params(jitter_strength=round(params.jitter_strength + 0.5, 2))
                elif event.key == pygame.K_DOWN:
                    self._update_params(jitter_strength=round(params.jitter_strength - 0.5, 2))
                elif event.key in (pygame.K_EQUALS, pygame.K_PLUS, pygame.K_KP_PLUS):
                    self._update_params(speed_fps=params.speed_fps + 1)
                elif event.key in (pygame.K_MINUS, pygame.K_KP_MINUS):
                    self._update_params(speed_fps=params.speed_fps - 1)

    def run(self):
        """Main loop: events, regeneration, due timers, tick."""
        base = self.store.base
        if base is None:
            raise RuntimeError("No image loaded")
        h, w = base.shape[:2]
        self.init_display(w, h)
        self.store.subscribe(self.scheduler.attach)
        self.store.subscribe_params(self._on_params)

        print("\n  Lineboil Preview")
        print("  " + "─" * 40)
        print("  Space=Play/Pause  Left/Right=Seed  Up/Down=Jitter  +/-=Speed  Esc=Exit")
        print()

        try:
            self.store.run_pending()
            self.scheduler.play()
            while self.running:
                self._handle_events()
                if self.store.busy:
                    self.store.run_pending()
                self.timers.run_due()
                self._clock.tick(self.loop_fps)
        except KeyboardInterrupt:
            print("\n  [INTERRUPTED]")
        finally:
            self._cleanup()

    def _cleanup(self):
        self.scheduler.teardown()
        self.store.unsubscribe(self.scheduler.attach)
        self.store.unsubscribe_params(self._on_params)
        if pygame and pygame.get_init():
            pygame.quit()
