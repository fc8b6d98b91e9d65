from __future__ import annotations

import logging
import tkinter as tk
from tkinter import ttk
from typing import List, Sequence

from PIL import ImageTk

from .cv_utils import load_image
from .data_model import QuestionWithGraphic
from .errors import ImageLoadError

logger = logging.getLogger(__name__)

THUMB_SIZE = (160, 96)


class QuestionBankPanel:
    def __init__(self, parent: tk.Widget) -> None:
        frame = ttk.LabelFrame(parent, text="Question bank", padding=8)
        self.frame = frame
        frame.pack(side="top", fill="both", expand=True)

        style = ttk.Style(frame)
        style.configure("Bank.Treeview", rowheight=THUMB_SIZE[1] + 8)

        self.tree = ttk.Treeview(
            frame,
            columns=("num", "section", "answer"),
            show="tree headings",
            selectmode="browse",
            style="Bank.Treeview",
        )
        self.tree.heading("#0", text="Graphic")
        self.tree.heading("num", text="Q")
        self.tree.heading("section", text="Section")
        self.tree.heading("answer", text="Correct answer")
        self.tree.column("#0", width=THUMB_SIZE[0] + 24, anchor="w")
        self.tree.column("num", width=50, anchor="center")
        self.tree.column("section", width=160, anchor="w")
        self.tree.column("answer", width=260, anchor="w")

        yscroll = ttk.Scrollbar(frame, orient="vertical", command=self.tree.yview)
        self.tree.configure(yscrollcommand=yscroll.set)
        yscroll.pack(side="right", fill="y")
        self.tree.pack(side="left", fill="both", expand=True)

        self.status_var = tk.StringVar(value="No question bank yet.")
        ttk.Label(parent, textvariable=self.status_var).pack(side="bottom", fill="x")

        self._thumbs: List[ImageTk.PhotoImage] = []

    def clear(self) -> None:
        self.tree.delete(*self.tree.get_children())
        self._thumbs = []

    def set_items(self, items: Sequence[QuestionWithGraphic]) -> None:
        self.clear()
        for item in items:
            try:
                img = load_image(item.question_graphic)
            except ImageLoadError as e:
                logger.error("Question %s: graphic could not be shown: %s", item.question_number, e)
                continue
            img.thumbnail(THUMB_SIZE)
            photo = ImageTk.PhotoImage(img)
            self._thumbs.append(photo)
            self.tree.insert("", "end", image=photo, values=(item.question_number, item.section, item.correct_answer))
        self.status_var.set(f"{len(self._thumbs)} question graphic(s).")
