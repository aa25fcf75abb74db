from __future__ import annotations

import queue
import threading
from pathlib import Path
from typing import Any, Optional, Tuple

import ttkbootstrap as tb
from ttkbootstrap.dialogs import Messagebox

from ghash.errors import GhashError
from ghash.plugins.base import LaunchRequest, ToolContext
from ghash.report import save_report
from ghash.verify import STATUS_OK, VerifyOutcome, VerifySummary, verify_manifest

_STATUS_TAGS = {
    "OK": "success",
    "FAILED": "danger",
}


class VerifyTool:
    key = "verify"
    title = "Verify checksums"
    description = "Re-hash the files listed in a ghash manifest and report anything that changed."

    def __init__(self) -> None:
        self.ctx: Optional[ToolContext] = None
        self.panel: Optional[tb.Frame] = None
        self.manifest_var: Optional[tb.StringVar] = None
        self.filter_var: Optional[tb.StringVar] = None
        self.summary_var: Optional[tb.StringVar] = None
        self.tree = None
        self.verify_button = None
        self._summary: Optional[VerifySummary] = None
        self._worker: Optional[threading.Thread] = None
        self._ui_queue: "queue.Queue[Tuple[str, Any]]" = queue.Queue()

    # ------------------------------------------------------------------ UI --
    def make_panel(self, master, context: ToolContext):
        import tkinter as tk
        from tkinter import filedialog

        self.ctx = context
        root = tb.Frame(master)
        self.panel = root

        source = tb.Labelframe(root, text="Manifest", padding=8)
        source.pack(fill="x", padx=8, pady=(10, 6))
        self.manifest_var = tk.StringVar(value="")
        tb.Entry(source, textvariable=self.manifest_var).pack(side="left", fill="x", expand=True, padx=(0, 6))
        tb.Button(source, text="Browse…", bootstyle="secondary",
                  command=lambda: self._choose_manifest(filedialog.askopenfilename)).pack(side="left")

        actions = tb.Frame(root)
        actions.pack(fill="x", padx=8, pady=(0, 6))
        self.verify_button = tb.Button(actions, text="Verify", bootstyle="success", command=self._start_verify)
        self.verify_button.pack(side="left")
        self.filter_var = tk.StringVar(value="All")
        filter_combo = tb.Combobox(actions, width=10, textvariable=self.filter_var, state="readonly",
                                   values=("All", "Failed", "OK"))
        filter_combo.pack(side="left", padx=(6, 0))
        filter_combo.bind("<<ComboboxSelected>>", lambda _evt: self._refresh_view())
        tb.Button(actions, text="Save report…", bootstyle="secondary",
                  command=lambda: self._save_report(filedialog.asksaveasfilename)).pack(side="right")
        self.summary_var = tk.StringVar(value="Ready.")
        tb.Label(actions, textvariable=self.summary_var, bootstyle="secondary").pack(side="right", padx=8)

        columns = ("line", "status", "path", "detail")
        self.tree = tb.Treeview(root, columns=columns, show="headings")
        for column, label, width in (("line", "Line", 60), ("status", "Status", 90), ("path", "Path", 320), ("detail", "Details", 320)):
            self.tree.heading(column, text=label)
            self.tree.column(column, width=width, anchor="w")
        self.tree.pack(fill="both", expand=True, padx=8, pady=(0, 8))

        style_manager = tb.Style()
        for status, style in _STATUS_TAGS.items():
            color = getattr(getattr(style_manager, "colors", None), style, None)
            if color:
                self.tree.tag_configure(status, foreground=color)
        return root

    def start(self, context: ToolContext, request: LaunchRequest):
        if self.manifest_var is None:
            return
        if request.manifest is not None:
            self.manifest_var.set(str(request.manifest))
        elif request.targets:
            self.manifest_var.set(str(request.targets[0]))

    def cleanup(self):
        if self._worker and self._worker.is_alive():
            self._worker.join(timeout=5)

    # ------------------------------------------------------------- actions --
    def _choose_manifest(self, chooser):
        path = chooser(title="Select ghash manifest")
        if path:
            self.manifest_var.set(path)

    def _start_verify(self):
        if self._worker and self._worker.is_alive():
            Messagebox.show_info(title=self.title, message="Verification is already running.")
            return
        manifest = self.manifest_var.get().strip()
        if not manifest or not Path(manifest).is_file():
            Messagebox.show_error(title=self.title, message="Choose an existing manifest file.")
            return
        self._summary = None
        self.tree.delete(*self.tree.get_children())
        self.verify_button.configure(state="disabled")
        self.summary_var.set("Verifying…")
        self._worker = threading.Thread(target=self._run_core, args=(manifest,), name="ghash-gui-verify", daemon=True)
        self._worker.start()
        self.panel.after(100, self._poll_ui_queue)

    def _run_core(self, manifest: str) -> None:
        try:
            summary = verify_manifest(manifest, result_callback=lambda o: self._ui_queue.put(("result", o)))
        except (GhashError, OSError) as exc:
            self._ui_queue.put(("fatal", str(exc)))
            return
        self._ui_queue.put(("done", summary))

    def _poll_ui_queue(self):
        try:
            while True:
                event, payload = self._ui_queue.get_nowait()
                if event == "result":
                    self.summary_var.set(f"Checked {payload.path}")
                elif event == "fatal":
                    self.verify_button.configure(state="normal")
                    self.summary_var.set("Failed.")
                    Messagebox.show_error(title=self.title, message=payload)
                elif event == "done":
                    self._finish(payload)
        except queue.Empty:
            pass
        if self._worker and self._worker.is_alive():
            self.panel.after(200, self._poll_ui_queue)
        elif not self._ui_queue.empty():
            self.panel.after(0, self._poll_ui_queue)

    def _finish(self, summary: VerifySummary):
        self._summary = summary
        self.verify_button.configure(state="normal")
        self.summary_var.set(
            f"Completed – {summary.total} entries, {len(summary.verified)} OK, {len(summary.failures)} failed"
        )
        self._refresh_view()

    def _refresh_view(self):
        if not self.tree or self._summary is None:
            return
        wanted = self.filter_var.get() if self.filter_var else "All"
        self.tree.delete(*self.tree.get_children())
        for item in self._summary.outcomes():
            if wanted == "OK" and item.status != STATUS_OK:
                continue
            if wanted == "Failed" and item.status == STATUS_OK:
                continue
            self._insert_row(item)

    def _insert_row(self, item: VerifyOutcome):
        self.tree.insert("", "end", values=(item.line or "", item.status, item.path, item.detail), tags=(item.status,))

    def _save_report(self, chooser):
        if self._summary is None:
            Messagebox.show_info(title=self.title, message="Run a verification first.")
            return
        file_path = chooser(
            title="Save verification report",
            defaultextension=".xlsx",
            filetypes=(("Excel workbook", "*.xlsx"), ("CSV report", "*.csv"), ("JSON report", "*.json")),
        )
        if not file_path:
            return
        try:
            target = save_report(file_path, self._summary)
        except OSError as exc:
            Messagebox.show_error(title=self.title, message=f"Cannot save report: {exc}")
            return
        Messagebox.show_info(title=self.title, message=f"Report saved to {target}")


TOOL = VerifyTool()
