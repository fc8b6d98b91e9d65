import asyncio
import logging
import time
from pathlib import Path
from typing import List, Optional

import tkinter as tk
from tkinter import ttk, filedialog, messagebox

from quiz_marker.config import MarkerSettings, load_settings
from quiz_marker.cropper import CropPolicy, build_question_bank
from quiz_marker.cv_utils import ImageSource, image_to_data_url, load_image, mime_for_image
from quiz_marker.data_model import GradingResult, summarize
from quiz_marker.editor import EditedImage
from quiz_marker.errors import ImageLoadError
from quiz_marker.export_csv import write_results_csv
from quiz_marker.store import SessionStore
from quiz_marker.ui_panel_bank import QuestionBankPanel
from quiz_marker.ui_panel_overlay import MarkedImagePanel
from quiz_marker.ui_window_editor import MaskEditorWindow

logger = logging.getLogger("quiz_marker")

IMAGE_TYPES = [("Images", "*.png *.jpg *.jpeg *.webp *.bmp *.gif"), ("All files", "*.*")]


def page_to_data_url(source: ImageSource) -> str:
    img = load_image(source)
    return image_to_data_url(img, mime_for_image(img))


# -----------------------------
# Main App
# -----------------------------

class QuizMarkerApp(tk.Tk):
    def __init__(self, settings: Optional[MarkerSettings] = None):
        super().__init__()
        self.title("Quiz Marker")
        self.geometry("1180x820")

        self.settings = settings or load_settings()
        self.store = SessionStore(Path(self.settings.store_path))

        self.pages: List[ImageSource] = []
        self.page_names: List[str] = []
        self.result: Optional[GradingResult] = None
        self.overlay_panel: Optional[MarkedImagePanel] = None

        self._build_ui()

    def _build_ui(self):
        toolbar = ttk.Frame(self, padding=(8, 8, 8, 4))
        toolbar.pack(side="top", fill="x")

        ttk.Button(toolbar, text="Open Pages…", command=self.open_pages).pack(side="left")
        ttk.Button(toolbar, text="Open Grading JSON…", command=self.open_result).pack(side="left", padx=(8, 0))
        ttk.Button(toolbar, text="Mask Page…", command=self.mask_current_page).pack(side="left", padx=(8, 0))
        ttk.Button(toolbar, text="Build Question Bank", command=self.build_bank).pack(side="left", padx=(8, 0))
        ttk.Button(toolbar, text="Save Session", command=self.save_session).pack(side="left", padx=(12, 0))
        ttk.Button(toolbar, text="Export CSV…", command=self.export_csv).pack(side="left", padx=(8, 0))

        self.status_var = tk.StringVar(value="Ready.")
        ttk.Label(toolbar, textvariable=self.status_var).pack(side="right")

        self.summary_var = tk.StringVar(value="")
        ttk.Label(self, textvariable=self.summary_var, padding=(8, 0)).pack(side="top", fill="x")

        self.notebook = ttk.Notebook(self, padding=(8, 4, 8, 8))
        self.notebook.pack(side="top", fill="both", expand=True)

        self.marked_tab = ttk.Frame(self.notebook)
        self.bank_tab = ttk.Frame(self.notebook)
        self.notebook.add(self.marked_tab, text="Marked pages")
        self.notebook.add(self.bank_tab, text="Question bank")

        self.bank_panel = QuestionBankPanel(self.bank_tab)

    def set_status(self, msg: str):
        self.status_var.set(msg)
        self.update_idletasks()

    # ---------- loading ----------

    def open_pages(self):
        paths = filedialog.askopenfilenames(title="Open quiz pages", filetypes=IMAGE_TYPES)
        if not paths:
            return
        self.pages = [Path(p) for p in paths]
        self.page_names = [Path(p).name for p in paths]
        self.result = None
        self.summary_var.set("")
        self.bank_panel.clear()
        self._rebuild_overlay()
        self.set_status(f"Opened {len(self.pages)} page(s).")

    def open_result(self):
        if not self.pages:
            messagebox.showinfo("Open Grading JSON", "Open the quiz pages first.")
            return
        path = filedialog.askopenfilename(title="Open grading result", filetypes=[("JSON", "*.json"), ("All files", "*.*")])
        if not path:
            return
        try:
            self.result = GradingResult.from_json(Path(path).read_text(encoding="utf-8"), image_count=len(self.pages))
        except (OSError, ValueError) as e:
            logger.error("Could not read grading result %s: %s", path, e)
            messagebox.showerror("Invalid grading result", str(e))
            return
        correct, wrong, not_answered = summarize(self.result)
        self.summary_var.set(f"Correct: {correct}   Wrong: {wrong}   Not answered: {not_answered}   "
                             f"Score: {self.result.score}/{self.result.total_questions}")
        self._rebuild_overlay()
        self.set_status(f"Loaded {len(self.result.questions)} graded question(s).")

    def _rebuild_overlay(self):
        if self.overlay_panel is not None:
            self.overlay_panel.frame.destroy()
            self.overlay_panel = None
        if not self.pages:
            return
        questions = self.result.questions if self.result is not None else []
        self.overlay_panel = MarkedImagePanel(self.marked_tab, images=self.pages, questions=questions)

    # ---------- masking ----------

    def mask_current_page(self):
        if not self.pages:
            messagebox.showinfo("Mask Page", "Open the quiz pages first.")
            return
        idx = self.overlay_panel.model.current_index if self.overlay_panel is not None else 0

        def on_save(artifact: EditedImage):
            self.pages[idx] = artifact.data
            self._rebuild_overlay()
            if self.overlay_panel is not None and idx:
                self.overlay_panel.go_to(idx)
            self.set_status(f"Page {idx + 1} masked ({artifact.size[0]}x{artifact.size[1]}).")

        def on_cancel():
            self.set_status("Masking cancelled.")

        MaskEditorWindow(
            self,
            source=self.pages[idx],
            filename=self.page_names[idx],
            on_save=on_save,
            on_cancel=on_cancel,
            settings=self.settings,
        )

    # ---------- results ----------

    def build_bank(self):
        if self.result is None:
            messagebox.showinfo("Question bank", "Open a grading result first.")
            return
        self.set_status("Cropping question graphics…")
        t0 = time.time()
        bank = asyncio.run(build_question_bank(self.result, self.pages, CropPolicy.from_settings(self.settings)))
        logger.info("Question bank: %d graphic(s) from %d question(s)", len(bank), len(self.result.questions))
        self.bank_panel.set_items(bank)
        self.notebook.select(self.bank_tab)
        self.set_status(f"Question bank built ({len(bank)} item(s), {time.time() - t0:.2f}s).")

    def save_session(self):
        if self.result is None:
            messagebox.showinfo("Save Session", "Nothing to save.")
            return
        try:
            urls = [page_to_data_url(p) for p in self.pages]
            session = self.store.save_quiz_session(self.result, urls)
        except (ImageLoadError, OSError) as e:
            logger.error("Could not save session: %s", e)
            messagebox.showerror("Save failed", str(e))
            return
        if session is None:
            self.set_status("No questions to save.")
            return
        self.set_status(f"Session saved to {self.store.path.name}")

    def export_csv(self):
        if self.result is None:
            messagebox.showinfo("Export CSV", "Nothing to export.")
            return
        path = filedialog.asksaveasfilename(
            defaultextension=".csv",
            filetypes=[("CSV files", "*.csv"), ("All files", "*.*")],
            title="Export graded questions as…"
        )
        if not path:
            return
        try:
            write_results_csv(path, self.result.questions)
            self.set_status(f"Saved: {Path(path).name}")
        except OSError as e:
            messagebox.showerror("Save failed", str(e))


def main():
    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="[%(levelname)s] %(name)s: %(message)s",
    )
    app = QuizMarkerApp(settings)
    app.mainloop()


if __name__ == "__main__":
    main()
