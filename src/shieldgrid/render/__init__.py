"""Render loop and matplotlib frame renderer."""

from shieldgrid.render.loop import RenderLoop
from shieldgrid.render.renderer import FrameStats, GridRenderer, render_section_image

__all__ = ['RenderLoop', 'GridRenderer', 'FrameStats', 'render_section_image']
