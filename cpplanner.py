import argparse
import logging
import math
from importlib import metadata as importlib_metadata
from typing import Callable, List, Optional

from planner_state import PARTY_COOLDOWN_HOURS, PARTY_COST, PlannerState, format_number
from share_link import SCHEMES, StaticLocation, build_share_url, copy_shareable_link, open_link, state_from_link

logger = logging.getLogger(__name__)

UI_SCALE = 1.2
SHARE_BASE_URL = "http://localhost:4200/"
ADVANCE_STEPS = (1, 8, 24)
LOG_ROWS = 12
__version__ = "0.2.0"


def get_version() -> str:
    """Resolve installed package version; fall back to local constant."""
    try:
        return importlib_metadata.version("cp-planner")
    except importlib_metadata.PackageNotFoundError:
        return __version__

try:  # UI dependencies are optional for headless runs
    import tkinter as tk
    from tkinter import messagebox, simpledialog
except ImportError:  # pragma: no cover - headless fallback
    tk = None
    messagebox = None
    simpledialog = None


def scaled(size: int) -> int:
    """Scale font sizes for readability."""
    return max(1, int(round(size * UI_SCALE)))


def parse_number(text: str):
    text = text.strip()
    try:
        return int(text)
    except ValueError:
        value = float(text)
    if not math.isfinite(value):
        raise ValueError(f"not a finite number: {text!r}")
    return value


class Tooltip:
    """Hover hint whose text is rebuilt from ``describe`` each time it opens."""

    def __init__(self, widget: "tk.Widget", describe: Callable[[], str]):
        self.widget = widget
        self.describe = describe
        self.tip = None
        widget.bind("<Enter>", self.show)
        widget.bind("<Leave>", self.hide)

    def show(self, _event=None):
        text = self.describe()
        if self.tip or not text:
            return
        x = self.widget.winfo_rootx() + 20
        y = self.widget.winfo_rooty() + self.widget.winfo_height() + 6
        self.tip = tk.Toplevel(self.widget)
        self.tip.wm_overrideredirect(True)
        self.tip.configure(bg="#333")
        tk.Label(
            self.tip,
            text=text,
            justify="left",
            bg="#333",
            fg="#f1f2f6",
            relief="solid",
            borderwidth=1,
            font=("Helvetica", scaled(10)),
            padx=6,
            pady=3,
        ).pack(ipadx=1)
        self.tip.wm_geometry(f"+{x}+{y}")

    def hide(self, _event=None):
        if self.tip:
            self.tip.destroy()
            self.tip = None


class TkClipboard:
    """Clipboard port backed by the Tk selection."""

    def __init__(self, root: "tk.Tk"):
        self.root = root

    def write_text(self, text: str) -> None:
        self.root.clipboard_clear()
        self.root.clipboard_append(text)
        self.root.update()  # keep the selection after the call returns


class PlannerApp:
    def __init__(
        self,
        root: "tk.Tk",
        state: PlannerState,
        location: StaticLocation,
        scheme: str = "b64",
    ):
        self.root = root
        self.root.title(f"CP Planner v{get_version()}")
        self.root.geometry("960x680")
        self.root.configure(bg="#1e272e")

        self.state = state
        self.location = location
        self.scheme = scheme
        self.clipboard = TkClipboard(root)

        self._build_menu()
        self._build_ui()
        self.update_ui()

    def _bind_action(self, fn: Callable[[], None]):
        def wrapper():
            fn()
            self.update_ui()

        return wrapper

    def _read_numbers(self, fields) -> Optional[List]:
        """Parse (label, StringVar) pairs; report the first bad one and give up."""
        values = []
        for label, var in fields:
            try:
                values.append(parse_number(var.get()))
            except (tk.TclError, ValueError):
                messagebox.showerror("Invalid number", f"{label} must be a number.")
                return None
        return values

    # --------- ui ---------

    def _build_menu(self):
        menubar = tk.Menu(self.root)
        share_menu = tk.Menu(menubar, tearoff=0)
        share_menu.add_command(label="Copy link", command=self._bind_action(self._menu_copy_link))
        share_menu.add_command(label="Open link...", command=self._menu_open_link)
        menubar.add_cascade(label="Share", menu=share_menu)
        self.root.config(menu=menubar)

    def _label(self, parent, text="", size=11, bold=False, fg="#ffffff", **kwargs):
        font = ("Helvetica", scaled(size), "bold") if bold else ("Helvetica", scaled(size))
        return tk.Label(parent, text=text, font=font, bg="#1e272e", fg=fg, **kwargs)

    def _button(self, parent, text, command, bg="#706fd3", fg="#ffffff"):
        return tk.Button(
            parent,
            text=text,
            font=("Helvetica", scaled(10), "bold"),
            bg=bg,
            fg=fg,
            command=command,
        )

    def _entry(self, parent, var, width=10):
        return tk.Entry(parent, textvariable=var, width=width, font=("Helvetica", scaled(10)))

    def _build_ui(self):
        # header
        header = tk.Frame(self.root, bg="#485460", pady=8)
        header.pack(fill="x")
        tk.Label(
            header,
            text="🎯 CP Planner",
            font=("Helvetica", scaled(20), "bold"),
            bg="#485460",
            fg="#ffd32a",
        ).pack()
        tk.Label(
            header,
            text=f"v{get_version()}",
            font=("Helvetica", scaled(11)),
            bg="#485460",
            fg="#d2dae2",
        ).pack()

        content = tk.Frame(self.root, bg="#1e272e")
        content.pack(fill="both", expand=True, padx=10, pady=5)
        for i in range(2):
            content.columnconfigure(i, weight=1)

        left = tk.Frame(content, bg="#1e272e")
        left.grid(row=0, column=0, sticky="nsew", padx=(0, 10))
        log_col = tk.Frame(content, bg="#1e272e")
        log_col.grid(row=0, column=1, sticky="nsew")

        # summary
        self._label(left, "Summary", size=14, bold=True).pack(anchor="w", pady=(0, 4))
        self.summary_labels = {}
        for key in ("res_per_hour", "cp_per_day", "current_res", "current_cp", "hours", "party"):
            lbl = tk.Label(
                left,
                text="",
                font=("Courier", scaled(12), "bold"),
                bg="#1e272e",
                fg="#0be881",
                anchor="w",
            )
            lbl.pack(anchor="w")
            self.summary_labels[key] = lbl

        # rate inputs, hidden until toggled
        self.btn_toggle_inputs = self._button(
            left, "show inputs", self._bind_action(self._toggle_inputs), bg="#57606f"
        )
        self.btn_toggle_inputs.pack(anchor="w", pady=(8, 2))
        self.inputs_frame = tk.Frame(left, bg="#1e272e")
        self.res_rate_var = tk.StringVar(value=format_number(self.state.res_per_hour))
        self.cp_rate_var = tk.StringVar(value=format_number(self.state.cp_per_day))
        self._label(self.inputs_frame, "res/hour").grid(row=0, column=0, sticky="w")
        self._entry(self.inputs_frame, self.res_rate_var).grid(row=0, column=1, padx=4)
        self._label(self.inputs_frame, "CP/day").grid(row=1, column=0, sticky="w")
        self._entry(self.inputs_frame, self.cp_rate_var).grid(row=1, column=1, padx=4)
        self._button(self.inputs_frame, "calculate", self._bind_action(self._calculate)).grid(
            row=2, column=0, columnspan=2, sticky="w", pady=2
        )

        # time
        self._label(left, "Advance time", size=14, bold=True).pack(anchor="w", pady=(10, 4))
        time_row = tk.Frame(left, bg="#1e272e")
        time_row.pack(anchor="w", fill="x")
        for hours in ADVANCE_STEPS:
            self._button(
                time_row,
                f"+{hours}h",
                self._bind_action(lambda h=hours: self.state.action_advance_time(h)),
                bg="#33d9b2",
                fg="#000000",
            ).pack(side="left", padx=2)
        self.custom_hours_var = tk.StringVar(value="")
        self._entry(time_row, self.custom_hours_var, width=6).pack(side="left", padx=(8, 2))
        self._button(time_row, "advance", self._bind_action(self._advance_custom)).pack(side="left")

        # party
        self.btn_party = self._button(
            left, "🎉 run party", self._bind_action(lambda: self.state.action_run_party()), bg="#ffb142", fg="#000000"
        )
        self.btn_party.pack(anchor="w", pady=(10, 2))
        self.party_tooltip = Tooltip(self.btn_party, lambda: party_tooltip_text(self.state))

        # building
        self._label(left, "Build", size=14, bold=True).pack(anchor="w", pady=(10, 4))
        build_frame = tk.Frame(left, bg="#1e272e")
        build_frame.pack(anchor="w")
        self.building_name_var = tk.StringVar(value="")
        self.building_cost_var = tk.StringVar(value="0")
        self.building_bonus_var = tk.StringVar(value="0")
        for row, (label, var, width) in enumerate(
            (
                ("name", self.building_name_var, 18),
                ("res cost", self.building_cost_var, 10),
                ("CP/day bonus", self.building_bonus_var, 10),
            )
        ):
            self._label(build_frame, label).grid(row=row, column=0, sticky="w")
            self._entry(build_frame, var, width=width).grid(row=row, column=1, sticky="w", padx=4)
        self._button(build_frame, "🏗️ build", self._bind_action(self._build)).grid(
            row=3, column=0, columnspan=2, sticky="w", pady=2
        )

        # manual adjustments
        self._label(left, "Adjust", size=14, bold=True).pack(anchor="w", pady=(10, 4))
        adjust_frame = tk.Frame(left, bg="#1e272e")
        adjust_frame.pack(anchor="w")
        self.add_res_var = tk.StringVar(value="0")
        self.add_cp_var = tk.StringVar(value="0")
        self._entry(adjust_frame, self.add_res_var).grid(row=0, column=0, padx=(0, 4))
        self._button(adjust_frame, "➕ add res", self._bind_action(self._add_resources), bg="#57606f").grid(
            row=0, column=1, sticky="w"
        )
        self._entry(adjust_frame, self.add_cp_var).grid(row=1, column=0, padx=(0, 4), pady=2)
        self._button(adjust_frame, "➕ add CP", self._bind_action(self._add_cp), bg="#57606f").grid(
            row=1, column=1, sticky="w"
        )

        # action log
        self._label(log_col, "action log", size=13, bold=True).pack(anchor="w", pady=(0, 4))
        self.log_labels = []
        for _ in range(LOG_ROWS):
            lbl = tk.Label(
                log_col,
                text="",
                font=("Helvetica", scaled(10), "italic"),
                bg="#1e272e",
                fg="#d2dae2",
                wraplength=360,
                justify="left",
            )
            lbl.pack(anchor="w", pady=(0, 2))
            self.log_labels.append(lbl)

    # --------- ui actions ---------

    def _toggle_inputs(self):
        self.state.show_inputs = not self.state.show_inputs

    def _calculate(self):
        values = self._read_numbers((("res/hour", self.res_rate_var), ("CP/day", self.cp_rate_var)))
        if values is None:
            return
        self.state.calculate(*values)

    def _advance_custom(self):
        values = self._read_numbers((("hours", self.custom_hours_var),))
        if values is None:
            return
        self.state.action_advance_time(values[0])
        self.custom_hours_var.set("")

    def _build(self):
        values = self._read_numbers(
            (("res cost", self.building_cost_var), ("CP/day bonus", self.building_bonus_var))
        )
        if values is None:
            return
        s = self.state
        s.building_name = self.building_name_var.get().strip()
        s.building_res_cost, s.building_cp_bonus = values
        s.action_build_building()
        # pending fields are only cleared by a successful build
        self.building_name_var.set(s.building_name)
        self.building_cost_var.set(format_number(s.building_res_cost))
        self.building_bonus_var.set(format_number(s.building_cp_bonus))

    def _add_resources(self):
        values = self._read_numbers((("resources", self.add_res_var),))
        if values is None:
            return
        self.state.add_res_amount = values[0]
        self.state.action_add_resources()
        self.add_res_var.set(format_number(self.state.add_res_amount))

    def _add_cp(self):
        values = self._read_numbers((("CP", self.add_cp_var),))
        if values is None:
            return
        self.state.add_cp_amount = values[0]
        self.state.action_add_cp()
        self.add_cp_var.set(format_number(self.state.add_cp_amount))

    def _menu_copy_link(self):
        copy_shareable_link(self.state, self.location, self.clipboard, scheme=self.scheme)

    def _menu_open_link(self):
        link = simpledialog.askstring("Open link", "Paste a share link or token:", parent=self.root)
        if not link:
            return
        open_link(self.state, link)
        self.res_rate_var.set(format_number(self.state.res_per_hour))
        self.cp_rate_var.set(format_number(self.state.cp_per_day))
        self.update_ui()

    # --------- ui update ---------

    def _show_notices(self):
        for notice in self.state.consume_notices():
            if notice.level == "error":
                messagebox.showerror("CP Planner", notice.message)
            elif notice.level == "warning":
                messagebox.showwarning("CP Planner", notice.message)
            else:
                messagebox.showinfo("CP Planner", notice.message)

    def _render_log(self):
        ordered = list(reversed(self.state.log_lines()))
        for idx, lbl in enumerate(self.log_labels):
            lbl.config(text=ordered[idx] if idx < len(ordered) else "")

    def update_ui(self):
        s = self.state
        for key, text in summary_lines(s):
            self.summary_labels[key].config(text=text)

        if s.show_inputs:
            self.inputs_frame.pack(anchor="w", after=self.btn_toggle_inputs)
            self.btn_toggle_inputs.config(text="hide inputs")
        else:
            self.inputs_frame.pack_forget()
            self.btn_toggle_inputs.config(text="show inputs")

        if s.can_run_party():
            self.btn_party.config(state="normal", bg="#ffb142")
        else:
            self.btn_party.config(state="disabled", bg="#84817a")

        self._render_log()
        self._show_notices()


def party_tooltip_text(state: PlannerState) -> str:
    lines = [
        f"costs {PARTY_COST} res, grants {format_number(state.cp_per_day)} CP.",
        f"{PARTY_COOLDOWN_HOURS}h cooldown.",
    ]
    if not state.can_run_party():
        lines.append(f"ready in {format_number(state.next_party_available_in)}h.")
    elif state.current_res < PARTY_COST:
        lines.append(f"short by {format_number(PARTY_COST - state.current_res)} res.")
    else:
        lines.append("ready now.")
    return "\n".join(lines)


def summary_lines(state: PlannerState):
    if state.can_run_party():
        party = "party ready"
    else:
        party = f"next party in: {format_number(state.next_party_available_in)}h"
    return [
        ("res_per_hour", f"res/hour: {format_number(state.res_per_hour)}"),
        ("cp_per_day", f"CP/day: {format_number(state.cp_per_day)}"),
        ("current_res", f"current res: {format_number(state.current_res)}"),
        ("current_cp", f"current CP: {state.current_cp:.2f}"),
        ("hours", f"hours since start: {format_number(state.hours_since_start)}"),
        ("party", party),
    ]


def run_headless(
    state: PlannerState,
    advances: List[float],
    party: bool = False,
    location: Optional[StaticLocation] = None,
    scheme: str = "b64",
):
    for hours in advances:
        state.action_advance_time(hours)
    if party:
        state.action_run_party()

    for notice in state.consume_notices():
        print(f"[{notice.level}] {notice.message}")
    for _key, text in summary_lines(state):
        print(text)
    print("log:")
    for line in state.log_lines():
        print(f"  {line}")
    if location is not None:
        print(build_share_url(state, location, scheme=scheme))


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(description="Plan resources and command points.")
    parser.add_argument(
        "--link",
        type=str,
        help="Share link (or bare state token) to start from.",
    )
    parser.add_argument(
        "--base-url",
        type=str,
        default=SHARE_BASE_URL,
        help=f"Page URL that share links point at (default: {SHARE_BASE_URL}).",
    )
    parser.add_argument(
        "--scheme",
        choices=SCHEMES,
        default="b64",
        help="Encoding used for share links.",
    )
    parser.add_argument(
        "--no-collapse",
        action="store_true",
        help="Keep every time advance as its own log line.",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Print the summary without launching the UI.",
    )
    parser.add_argument(
        "--advance",
        type=float,
        action="append",
        default=[],
        metavar="HOURS",
        help="Advance time before printing (headless, repeatable).",
    )
    parser.add_argument(
        "--party",
        action="store_true",
        help="Run a party after advancing (headless).",
    )
    parser.add_argument(
        "--print-link",
        action="store_true",
        help="Print the share link after the summary (headless).",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.version:
        print(get_version())
        raise SystemExit(0)

    try:
        location = StaticLocation.from_url(args.base_url)
    except ValueError as exc:
        raise SystemExit(f"Bad --base-url: {exc}")

    collapse = not args.no_collapse
    if args.link:
        logger.debug("loading state from %s", args.link)
        state = state_from_link(args.link, collapse_log=collapse)
    else:
        state = PlannerState(collapse_log=collapse)

    if args.headless or args.advance or args.party or args.print_link:
        advances = [int(h) if float(h).is_integer() else h for h in args.advance]
        run_headless(
            state,
            advances,
            party=args.party,
            location=location if args.print_link else None,
            scheme=args.scheme,
        )
    else:
        if tk is None:
            raise SystemExit("Tkinter is required to launch the UI.")
        root = tk.Tk()
        PlannerApp(root, state, location, scheme=args.scheme)
        root.mainloop()


if __name__ == "__main__":
    main()
