# timebox/main.py
import os, sys
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
import flet as ft

from core.settings import UI
from storage.db import init_db
from ui.app_shell import AppShell


def main(page: ft.Page):
    page.theme_mode = ft.ThemeMode(UI.theme_mode)
    page.theme = ft.Theme(color_scheme_seed=UI.color_scheme_seed)
    page.padding = 0
    page.window.min_width = UI.window_min_width
    page.window.min_height = UI.window_min_height

    init_db()
    shell = AppShell(page)
    shell.mount()


def run():
    ft.app(target=main)


if __name__ == "__main__":
    run()
