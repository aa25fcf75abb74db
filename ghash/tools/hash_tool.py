from __future__ import annotations

import queue
import threading
from pathlib import Path
from typing import Any, List, Optional, Tuple

import tkinter as tk
import ttkbootstrap as tb
from ttkbootstrap.dialogs import Messagebox

from ghash.config import GhashConfig
from ghash.core import HashResult
from ghash.errors import GhashError
from ghash.generate import GenerateSummary, generate
from ghash.hashes import DEFAULT_ALGORITHM, available_algorithms
from ghash.manifest import ManifestWriter
from ghash.output import SafeFile
from ghash.plugins.base import LaunchRequest, ToolContext


class HashTool:
    key = "hash"
    title = "Generate checksums"
    description = "Hash the selected files/folders in parallel and write a ghash manifest."

    def __init__(self):
        self.panel = None
        self.out_var = None
        self.algo_var = None
        self.recursive_var = None
        self.follow_var = None
        self.onefs_var = None
        self.status_var = None
        self.listbox = None
        self.results = None
        self.run_button = None
        self.ctx: Optional[ToolContext] = None
        self.targets: List[Path] = []
        self._worker: Optional[threading.Thread] = None
        self._ui_queue: "queue.Queue[Tuple[str, Any]]" = queue.Queue()

    def make_panel(self, master, context: ToolContext):
        from tkinter import filedialog

        self.ctx = context
        frm = tb.Labelframe(master, text=self.title)
        top = tb.Frame(frm); top.pack(fill="x", padx=8, pady=6)
        self.out_var = tb.StringVar(value=str(Path.home() / "checksums.ghash"))
        self.algo_var = tb.StringVar(value=DEFAULT_ALGORITHM)
        self.recursive_var = tb.BooleanVar(value=True)
        self.follow_var = tb.BooleanVar(value=False)
        self.onefs_var = tb.BooleanVar(value=False)
        tb.Label(top, text="Manifest:").pack(side="left")
        tb.Entry(top, textvariable=self.out_var).pack(side="left", fill="x", expand=True, padx=6)
        tb.Button(top, text="Browse…", bootstyle="secondary",
                  command=lambda: self._choose_output(filedialog.asksaveasfilename)).pack(side="left")
        self.run_button = tb.Button(top, text="Run", command=self._run, bootstyle="success")
        self.run_button.pack(side="right", padx=4)

        opts = tb.Frame(frm); opts.pack(fill="x", padx=8)
        tb.Label(opts, text="Algorithm:").pack(side="left")
        tb.Combobox(opts, textvariable=self.algo_var, values=tuple(available_algorithms()),
                    state="readonly", width=12).pack(side="left", padx=6)
        tb.Checkbutton(opts, text="Recursive", variable=self.recursive_var).pack(side="left", padx=6)
        tb.Checkbutton(opts, text="Follow symlinks", variable=self.follow_var).pack(side="left", padx=6)
        tb.Checkbutton(opts, text="One filesystem", variable=self.onefs_var).pack(side="left", padx=6)

        split = tb.PanedWindow(frm, orient="vertical")
        split.pack(fill="both", expand=True, padx=8, pady=8)
        self.listbox = tk.Listbox(split, height=8)
        self.results = tk.Listbox(split, height=12)
        split.add(self.listbox, weight=1)
        split.add(self.results, weight=2)

        self.status_var = tb.StringVar(value="Ready.")
        tb.Label(frm, textvariable=self.status_var, bootstyle="secondary").pack(fill="x", padx=8, pady=(0, 6))

        self.panel = frm
        return frm

    def start(self, context: ToolContext, request: LaunchRequest):
        self.targets = list(request.targets)
        if request.algorithm:
            self.algo_var.set(request.algorithm)
        if request.recurse is not None:
            self.recursive_var.set(request.recurse)
        if self.targets:
            self.listbox.delete(0, "end")
            for t in self.targets: self.listbox.insert("end", str(t))

    def cleanup(self):
        if self._worker and self._worker.is_alive():
            self._worker.join(timeout=5)

    def _choose_output(self, chooser):
        path = chooser(defaultextension=".ghash", title="Save manifest as")
        if path:
            self.out_var.set(path)

    def _run(self):
        if not self.targets:
            Messagebox.show_warning("No targets selected.")
            return
        if self._worker and self._worker.is_alive():
            Messagebox.show_info("Hashing is already running.")
            return
        config = GhashConfig(
            algorithm=self.algo_var.get(),
            recurse=bool(self.recursive_var.get()),
            follow_symlinks=bool(self.follow_var.get()),
            one_filesystem=bool(self.onefs_var.get()),
            output=self.out_var.get(),
            force=True,
            excludes=self.ctx.excludes.merged() if self.ctx else [],
        )
        self.results.delete(0, "end")
        self.run_button.configure(state="disabled")
        self.status_var.set("Hashing…")
        self._worker = threading.Thread(target=self._run_core, args=(config,), name="ghash-gui-hash", daemon=True)
        self._worker.start()
        self.panel.after(100, self._poll_ui_queue)

    def _run_core(self, config: GhashConfig) -> None:
        names = [str(t) for t in self.targets]
        try:
            with SafeFile(config.output, force=config.force) as out:
                writer = ManifestWriter(out, config.algorithm)

                def _record(result: HashResult) -> None:
                    writer.write_result(result)
                    self._ui_queue.put(("result", result))

                summary = generate(names, config, _record,
                                   status_callback=lambda s: self._ui_queue.put(("status", s)))
        except (GhashError, OSError) as exc:
            self._ui_queue.put(("fatal", str(exc)))
            return
        self._ui_queue.put(("done", summary))

    def _poll_ui_queue(self):
        try:
            while True:
                event, payload = self._ui_queue.get_nowait()
                if event == "result":
                    self.results.insert("end", f"{payload.hexdigest[:16]}…  {payload.size:>12}  {payload.path}")
                elif event == "status":
                    self.status_var.set(f"Pipeline: {payload}")
                elif event == "fatal":
                    self._finish()
                    Messagebox.show_error(message=payload, title=self.title)
                elif event == "done":
                    self._finish(payload)
        except queue.Empty:
            pass
        if self._worker and self._worker.is_alive():
            self.panel.after(200, self._poll_ui_queue)
        elif not self._ui_queue.empty():
            self.panel.after(0, self._poll_ui_queue)

    def _finish(self, summary: Optional[GenerateSummary] = None):
        self.run_button.configure(state="normal")
        if summary is None:
            self.status_var.set("Failed.")
            return
        for failure in summary.failures:
            self.results.insert("end", f"ERROR  {failure}")
        self.status_var.set(
            f"Completed – {summary.hashed} files, {summary.hashed_bytes / (1024 * 1024):.1f} MB hashed, "
            f"{len(summary.failures)} problem(s). Manifest: {self.out_var.get()}"
        )


TOOL = HashTool()
