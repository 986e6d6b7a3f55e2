"""
MCC Terminal
============
The map console's command interpreter.

This is a small state machine, not a free-form parser: each submitted
line is handled by exactly one of puzzle mode, password mode, or normal
command dispatch. Commands never touch the map or the vehicle; they
return a CommandResult carrying output lines, a state patch and a list
of actions for the dispatcher.

Nothing here raises on bad input. Every failure is a transcript line.
"""

import math
import logging
from datetime import datetime
from typing import Optional, Callable, Dict, List, Any
from dataclasses import dataclass, field, fields

from actions import (
    FlyTo, Zoom,
    StartUXV, StopUXV, UxvGoto, UxvSpeed, UxvDrop, UxvReturn, UxvFollow,
    UxvWeapon, UxvCharge, UxvFire, UxvPatrol, UxvAltitude, UxvTrail,
    PlaySound, UnlockAchievement, TriggerAlert,
)
from registry import WorldRegistry, GeoPoint
from uxv_engine import WeaponType, PatrolMode
from vfs import VirtualFS, create_default_fs, resolve_path

logger = logging.getLogger("mcc.terminal")


# ─────────────────────────────────────────────────────────────────
# Configuration
# ─────────────────────────────────────────────────────────────────

BANNER = ["MAP-TERM v0.1 — type 'help'", ""]

# Cosmetic only. This is a narrative puzzle, not access control.
ADMIN_PASSWORD = "legion"
LOCKOUT_THRESHOLD = 3
ALERT_DURATION_MS = 6000

PUZZLE_TOKENS = ("watch", "skies")

NAV_ZOOM = 10
NAV_DURATION_MS = 1200
ZOOM_DURATION_MS = 500
CENTER_DURATION_MS = 800

SECRETS_CONTENT = "LEGION PROTOCOL ACTIVE. Keep watching the skies."


@dataclass
class InterpreterState:
    """Per-session terminal state. Only the Terminal writes to it."""
    is_open: bool = False
    transcript: List[str] = field(default_factory=lambda: list(BANNER))
    pending_input: str = ""
    awaiting_password: bool = False
    is_admin: bool = False
    wrong_password_count: int = 0
    alert_active: bool = False
    puzzle_stage: int = 0
    working_directory: str = "/"


STATE_FIELDS = {f.name for f in fields(InterpreterState)}


@dataclass
class CommandResult:
    """Result of executing one line."""
    output: Optional[List[str]] = None
    state_patch: Optional[Dict[str, Any]] = None
    actions: Optional[List[Any]] = None


@dataclass(frozen=True)
class Command:
    name: str
    handler: Callable[[List[str], InterpreterState], CommandResult]
    admin_only: bool = False
    aliases: tuple = ()
    category: str = 'Other'
    usage: str = ''
    help: str = ''


def parse_number(text: Optional[str]) -> Optional[float]:
    """Finite float or None. Never raises."""
    try:
        value = float(text)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def fmt(value: float) -> str:
    return f"{value:g}"


class Terminal:
    """
    Command interpreter bound to one InterpreterState.

    Responsibilities:
    - Route each line through the puzzle/password/command state machine
    - Dispatch commands from an immutable table built at construction
    - Apply state patches and keep the transcript
    """

    def __init__(self, registry: Optional[WorldRegistry] = None,
                 fs: Optional[VirtualFS] = None,
                 state: Optional[InterpreterState] = None):
        self.registry = registry or WorldRegistry()
        self.fs = fs or create_default_fs()
        self.state = state or InterpreterState()
        self.commands: Dict[str, Command] = {}
        self.command_meta: List[Command] = []

        # Generated docs reflect the loaded world
        self.fs.add_file('/docs/regions.txt', "\n".join(self.registry.keys()))
        self.fs.add_file('/docs/companies.txt', self._list_companies())
        self.fs.add_file('/secrets', SECRETS_CONTENT)

        self._register_builtins()

    def _register_builtins(self):
        """Register built-in commands."""
        # System
        self._register('help', self._cmd_help,
            category='System', usage='help [command]', help='List commands or describe one')
        self._register('clear', self._cmd_clear, aliases=['cls'],
            category='System', help='Clear the screen')
        self._register('close', self._cmd_close, aliases=['exit'],
            category='System', help='Close the terminal')
        self._register('login', self._cmd_login,
            category='System', help='Authenticate as admin')
        self._register('probe', self._cmd_probe,
            category='System', help='Calibrate sensors')

        # Map
        self._register('regions', self._cmd_regions,
            category='Map', help='List geofenced regions')
        self._register('companies', self._cmd_companies,
            category='Map', help='List roster companies')
        self._register('goto', self._cmd_goto,
            category='Map', usage='goto <key> | goto hq <company>', help='Fly to a region or company HQ')
        self._register('hq', self._cmd_hq,
            category='Map', usage='hq <company>', help='Fly to a company HQ')
        self._register('zoom', self._cmd_zoom,
            category='Map', usage='zoom <n>', help='Set map zoom')
        self._register('center', self._cmd_center,
            category='Map', usage='center <lng> <lat>', help='Center the map')
        self._register('scan', self._cmd_scan,
            category='Map', help='Sweep the area')

        # Vehicle
        self._register('uxv', self._cmd_uxv,
            category='Vehicle', usage='uxv <subcommand>', help='Command the UXV (uxv help)')
        self._register('weapons', self._cmd_weapons, admin_only=True,
            category='Vehicle', usage='weapons <select|charge|fire>', help='Weapon systems (admin)')
        self._register('unlock-all', self._cmd_unlock_all, admin_only=True,
            category='Vehicle', help='Engage all systems (admin)')

        # Shell
        self._register('pwd', self._cmd_pwd, category='Shell', help='Print working directory')
        self._register('ls', self._cmd_ls, category='Shell', usage='ls [path]', help='List a directory')
        self._register('cd', self._cmd_cd, category='Shell', usage='cd [path]', help='Change directory')
        self._register('cat', self._cmd_cat, category='Shell', usage='cat <file>', help='Print a file')
        self._register('whoami', self._cmd_whoami, category='Shell', help='Print the current user')
        self._register('uname', self._cmd_uname, category='Shell', usage='uname [-a]', help='System info')
        self._register('date', self._cmd_date, category='Shell', help='Print the date')
        self._register('echo', self._cmd_echo, category='Shell', usage='echo <text>', help='Print text')
        self._register('man', self._cmd_man, category='Shell', usage='man <cmd>', help='Manual pages')
        self._register('sudo', self._cmd_sudo, category='Shell', usage='sudo su', help='Become root')

    def _register(self, name: str, handler: Callable, admin_only: bool = False,
                  aliases: List[str] = None, category: str = 'Other',
                  usage: str = None, help: str = ''):
        """Register a command handler with metadata for auto-documentation."""
        cmd = Command(name=name, handler=handler, admin_only=admin_only,
                      aliases=tuple(aliases or ()), category=category,
                      usage=usage or name, help=help)
        self.commands[name.lower()] = cmd
        for alias in cmd.aliases:
            self.commands[alias.lower()] = cmd
        self.command_meta.append(cmd)

    # ─────────────────────────────────────────────────────────────
    # Session Controls
    # ─────────────────────────────────────────────────────────────

    @property
    def prompt(self) -> str:
        user = 'root' if self.state.is_admin else 'guest'
        return f"{user}@map:{self.state.working_directory}$"

    def open(self):
        self.state.is_open = True

    def close(self):
        self.state.is_open = False

    def clear_alert(self):
        self.state.alert_active = False

    # ─────────────────────────────────────────────────────────────
    # Line Processing
    # ─────────────────────────────────────────────────────────────

    def submit(self, line: str) -> CommandResult:
        """
        Run one line against the current state and record it.

        The echoed line goes into the transcript first, then the state
        patch is applied (so 'clear' wipes the echo too), then output.
        """
        state = self.state
        echo = '*' * len(line.strip()) if state.awaiting_password else line
        state.transcript.append(f"{self.prompt} {echo}".rstrip())

        result = self.process_command(line, state)

        self.apply_patch(result.state_patch)
        state.transcript.extend(result.output or [])
        state.pending_input = ""
        return result

    def apply_patch(self, patch: Optional[Dict[str, Any]]):
        for key, value in (patch or {}).items():
            if key not in STATE_FIELDS:
                raise KeyError(f"Unknown terminal state field: {key}")
            setattr(self.state, key, list(value) if key == 'transcript' else value)

    def process_command(self, raw_input: str, state: InterpreterState) -> CommandResult:
        """
        Decide what a line does. Pure: reads state, returns a result.

        Order: puzzle answer, password attempt, blank line, command.
        """
        text = (raw_input or "").strip()

        if state.puzzle_stage == 1:
            return self._answer_puzzle(text)

        if state.awaiting_password:
            return self._check_password(text, state)

        if not text:
            return CommandResult(output=[''])

        parts = text.split()
        cmd_name, args = parts[0], parts[1:]
        cmd = self.commands.get(cmd_name.lower())
        if not cmd:
            return CommandResult(output=[f"Unknown: {cmd_name}"])

        if cmd.admin_only and not state.is_admin:
            return CommandResult(output=['Permission denied. Admin access required.'])

        return cmd.handler(args, state)

    def _answer_puzzle(self, text: str) -> CommandResult:
        lowered = text.lower()
        if all(token in lowered for token in PUZZLE_TOKENS):
            return CommandResult(
                output=['Probe complete. Anomalies acknowledged.'],
                state_patch={'puzzle_stage': 0},
                actions=[UnlockAchievement('hidden_commands')])
        return CommandResult(output=['Hint: a classic UFO trope.'])

    def _check_password(self, text: str, state: InterpreterState) -> CommandResult:
        if text.lower() == ADMIN_PASSWORD:
            logger.info("Terminal admin login")
            return CommandResult(
                output=['ACCESS GRANTED.'],
                state_patch={'is_admin': True, 'awaiting_password': False,
                             'wrong_password_count': 0},
                actions=[UnlockAchievement('map_admin'), PlaySound('access_granted')])

        wrong = state.wrong_password_count + 1
        result = CommandResult(
            output=['ACCESS DENIED.'],
            state_patch={'awaiting_password': False, 'wrong_password_count': wrong})

        if wrong >= LOCKOUT_THRESHOLD:
            logger.warning("Terminal lockout: too many failed passwords")
            result.state_patch['alert_active'] = True
            result.state_patch['wrong_password_count'] = 0
            result.actions = [TriggerAlert(ALERT_DURATION_MS)]
        return result

    # ─────────────────────────────────────────────────────────────
    # System Commands
    # ─────────────────────────────────────────────────────────────

    def _cmd_help(self, args: List[str], state: InterpreterState) -> CommandResult:
        """Show help - auto-generated from command registry."""
        if args:
            cmd = self.commands.get(args[0].lower())
            if not cmd:
                return CommandResult(output=[f"No help found for: {args[0]}"])
            lines = [f"{cmd.name}: {cmd.help}", f"Usage: {cmd.usage}"]
            if cmd.aliases:
                lines.append(f"Aliases: {', '.join(cmd.aliases)}")
            return CommandResult(output=lines)

        labels = {'System': 'Commands', 'Map': 'Map', 'Vehicle': 'Vehicle', 'Shell': 'Linux-ish'}
        lines = []
        for category, label in labels.items():
            names = [c.usage for c in self.command_meta
                     if c.category == category and (state.is_admin or not c.admin_only)]
            if names:
                lines.append(f"{label}: {', '.join(names)}")
        return CommandResult(output=lines)

    def _cmd_clear(self, args: List[str], state: InterpreterState) -> CommandResult:
        return CommandResult(state_patch={'transcript': list(BANNER)})

    def _cmd_close(self, args: List[str], state: InterpreterState) -> CommandResult:
        return CommandResult(state_patch={'is_open': False})

    def _cmd_login(self, args: List[str], state: InterpreterState) -> CommandResult:
        if state.is_admin:
            return CommandResult(output=['Already logged in as admin.'])
        return CommandResult(output=['Password:'], state_patch={'awaiting_password': True})

    def _cmd_probe(self, args: List[str], state: InterpreterState) -> CommandResult:
        return CommandResult(
            output=['PROBE: Complete the phrase to calibrate sensors. "_____ the _____"'],
            state_patch={'puzzle_stage': 1})

    # ─────────────────────────────────────────────────────────────
    # Map Commands
    # ─────────────────────────────────────────────────────────────

    def _list_companies(self) -> str:
        return ', '.join(self.registry.company_names()) or '(none)'

    def _cmd_regions(self, args: List[str], state: InterpreterState) -> CommandResult:
        return CommandResult(output=[', '.join(self.registry.keys()) or '(none)'])

    def _cmd_companies(self, args: List[str], state: InterpreterState) -> CommandResult:
        return CommandResult(output=[self._list_companies()])

    def _cmd_goto(self, args: List[str], state: InterpreterState) -> CommandResult:
        if not args:
            return CommandResult(output=['Usage: goto <region-key> | goto hq <company>'])

        if args[0].lower() == 'hq':
            if len(args) < 2:
                return CommandResult(output=['Usage: goto hq <company>'])
            return self._cmd_hq(args[1:], state)

        key = args[0].lower()
        center = self.registry.center_of(key)
        if center is None:
            return CommandResult(output=[f"Unknown region: {key}"])

        return CommandResult(
            output=[f"Navigating to {key}…"],
            state_patch={'is_open': False},
            actions=[FlyTo(center, zoom=NAV_ZOOM, duration_ms=NAV_DURATION_MS),
                     UnlockAchievement(f"visit_{key}"),
                     PlaySound('navigate')])

    def _cmd_hq(self, args: List[str], state: InterpreterState) -> CommandResult:
        query = ' '.join(args)
        if not query:
            return CommandResult(output=['Usage: hq <company>'])
        if not self.registry.roster:
            return CommandResult(output=['Roster data not available'])

        entry = self.registry.find_company(query)
        if not entry:
            return CommandResult(output=[f"Unknown company: {query}"])

        return CommandResult(
            output=[f"Navigating to {query} HQ…"],
            state_patch={'is_open': False},
            actions=[FlyTo(entry.location, zoom=NAV_ZOOM, duration_ms=NAV_DURATION_MS),
                     UnlockAchievement(f"visit_hq_{query.lower()}"),
                     PlaySound('navigate')])

    def _cmd_zoom(self, args: List[str], state: InterpreterState) -> CommandResult:
        zoom = parse_number(args[0] if args else None)
        if zoom is None:
            return CommandResult(output=['Usage: zoom <number>'])
        return CommandResult(output=[f"Zoom {fmt(zoom)}"],
                             actions=[Zoom(zoom, duration_ms=ZOOM_DURATION_MS)])

    def _cmd_center(self, args: List[str], state: InterpreterState) -> CommandResult:
        point = self._parse_point(args)
        if point is None:
            return CommandResult(output=['Usage: center <lng> <lat>'])
        return CommandResult(output=[f"Center {fmt(point.lng)}, {fmt(point.lat)}"],
                             actions=[FlyTo(point, duration_ms=CENTER_DURATION_MS)])

    def _cmd_scan(self, args: List[str], state: InterpreterState) -> CommandResult:
        return CommandResult(output=['Scanning…'],
                             actions=[UnlockAchievement('map_scan'), PlaySound('scan')])

    @staticmethod
    def _parse_point(args: List[str]) -> Optional[GeoPoint]:
        if len(args) < 2:
            return None
        lng, lat = parse_number(args[0]), parse_number(args[1])
        if lng is None or lat is None:
            return None
        return GeoPoint(lng, lat)

    # ─────────────────────────────────────────────────────────────
    # Vehicle Commands
    # ─────────────────────────────────────────────────────────────

    def _cmd_uxv(self, args: List[str], state: InterpreterState) -> CommandResult:
        sub = (args[0] if args else '').lower()
        rest = args[1:]

        if not sub or sub == 'help':
            return CommandResult(output=[
                'uxv subcmds: start [lng lat], stop, goto <lng> <lat> | region <key>, '
                'speed <mps>, drop, return, follow <on|off>, '
                'patrol <none|circle|figure8|random|zigzag>, altitude <m>, trail <n>'])

        handler = {
            'start': self._uxv_start,
            'stop': self._uxv_stop,
            'goto': self._uxv_goto,
            'speed': self._uxv_speed,
            'drop': self._uxv_drop,
            'return': self._uxv_return,
            'follow': self._uxv_follow,
            'patrol': self._uxv_patrol,
            'altitude': self._uxv_altitude,
            'trail': self._uxv_trail,
        }.get(sub)
        if not handler:
            return CommandResult(output=[f"UXV: unknown subcommand '{sub}'"])
        return handler(rest)

    @staticmethod
    def _order(line: str, *actions) -> CommandResult:
        """Successful vehicle orders close the console so the map is visible."""
        return CommandResult(output=[line], state_patch={'is_open': False}, actions=list(actions))

    def _uxv_start(self, args: List[str]) -> CommandResult:
        position = None
        if args:
            position = self._parse_point(args)
            if position is None:
                return CommandResult(output=['Usage: uxv start [lng lat]'])
        return self._order('UXV: start', StartUXV(position), PlaySound('engage'))

    def _uxv_stop(self, args: List[str]) -> CommandResult:
        return self._order('UXV: stop', StopUXV(), PlaySound('disengage'))

    def _uxv_goto(self, args: List[str]) -> CommandResult:
        if args and args[0].lower() == 'region':
            key = (args[1] if len(args) > 1 else '').lower()
            if not key:
                return CommandResult(output=['Usage: uxv goto region <key>'])
            center = self.registry.center_of(key)
            if center is None:
                return CommandResult(output=[f"Unknown region: {key}"])
            return self._order(f"UXV: target set to {key}", UxvGoto(center), PlaySound('navigate'))

        target = self._parse_point(args)
        if target is None:
            return CommandResult(output=['Usage: uxv goto <lng> <lat>'])
        return self._order(f"UXV: target set to {fmt(target.lng)}, {fmt(target.lat)}",
                           UxvGoto(target), PlaySound('navigate'))

    def _uxv_speed(self, args: List[str]) -> CommandResult:
        speed = parse_number(args[0] if args else None)
        if speed is None:
            return CommandResult(output=['Usage: uxv speed <mps>'])
        return self._order(f"UXV: speed {fmt(speed)} m/s", UxvSpeed(speed))

    def _uxv_drop(self, args: List[str]) -> CommandResult:
        return self._order('UXV: payload drop', UxvDrop(), PlaySound('sweep'))

    def _uxv_return(self, args: List[str]) -> CommandResult:
        return self._order('UXV: return to base', UxvReturn(), PlaySound('navigate'))

    def _uxv_follow(self, args: List[str]) -> CommandResult:
        val = (args[0] if args else '').lower()
        if val not in ('on', 'off'):
            return CommandResult(output=['Usage: uxv follow <on|off>'])
        return self._order(f"UXV: follow {val}", UxvFollow(val == 'on'))

    def _uxv_patrol(self, args: List[str]) -> CommandResult:
        mode = (args[0] if args else '').lower()
        if mode not in {m.value for m in PatrolMode}:
            return CommandResult(output=['Usage: uxv patrol <none|circle|figure8|random|zigzag>'])
        return self._order(f"UXV: patrol {mode}", UxvPatrol(mode))

    def _uxv_altitude(self, args: List[str]) -> CommandResult:
        meters = parse_number(args[0] if args else None)
        if meters is None:
            return CommandResult(output=['Usage: uxv altitude <meters>'])
        return self._order(f"UXV: altitude {fmt(meters)} m", UxvAltitude(meters))

    def _uxv_trail(self, args: List[str]) -> CommandResult:
        length = parse_number(args[0] if args else None)
        if length is None:
            return CommandResult(output=['Usage: uxv trail <points>'])
        return self._order(f"UXV: trail {int(length)} points", UxvTrail(int(length)))

    def _cmd_weapons(self, args: List[str], state: InterpreterState) -> CommandResult:
        sub = (args[0] if args else '').lower()
        weapon_names = '|'.join(w.value for w in WeaponType)

        if sub == 'select':
            name = (args[1] if len(args) > 1 else '').lower()
            if name not in {w.value for w in WeaponType}:
                return CommandResult(output=[f"Usage: weapons select <{weapon_names}>"])
            return CommandResult(output=[f"WEAPONS: {name} armed"],
                                 actions=[UxvWeapon(name), PlaySound('arm')])

        if sub == 'charge':
            val = (args[1] if len(args) > 1 else '').lower()
            if val not in ('on', 'off'):
                return CommandResult(output=['Usage: weapons charge <on|off>'])
            return CommandResult(output=[f"WEAPONS: charging {val}"],
                                 actions=[UxvCharge(val == 'on')])

        if sub == 'fire':
            target = self._parse_point(args[1:])
            if target is None:
                return CommandResult(output=['Usage: weapons fire <lng> <lat>'])
            return self._order(f"WEAPONS: firing on {fmt(target.lng)}, {fmt(target.lat)}",
                               UxvFire(target), PlaySound('fire'))

        return CommandResult(output=[f"weapons subcmds: select <{weapon_names}>, "
                                     "charge <on|off>, fire <lng> <lat>"])

    def _cmd_unlock_all(self, args: List[str], state: InterpreterState) -> CommandResult:
        return CommandResult(output=['All systems engaged.'],
                             actions=[UnlockAchievement('easter_hunter')])

    # ─────────────────────────────────────────────────────────────
    # Shell Commands
    # ─────────────────────────────────────────────────────────────

    def _cmd_pwd(self, args: List[str], state: InterpreterState) -> CommandResult:
        return CommandResult(output=[state.working_directory])

    def _cmd_ls(self, args: List[str], state: InterpreterState) -> CommandResult:
        arg = args[0] if args else '.'
        entries = self.fs.list_directory(resolve_path(state.working_directory, arg))
        if entries is None:
            return CommandResult(output=[f"ls: cannot access '{arg}': Not a directory"])
        return CommandResult(output=['  '.join(entries)])

    def _cmd_cd(self, args: List[str], state: InterpreterState) -> CommandResult:
        target = args[0] if args else '/'
        path = resolve_path(state.working_directory, target)
        if not self.fs.is_directory(path):
            return CommandResult(output=[f"cd: no such file or directory: {target}"])
        return CommandResult(state_patch={'working_directory': path})

    def _cmd_cat(self, args: List[str], state: InterpreterState) -> CommandResult:
        if not args:
            return CommandResult(output=['cat: missing file operand'])
        arg = args[0]

        path = resolve_path(state.working_directory, arg)
        # Bare names fall back to /docs
        if self.fs.read_file(path) is None and '/' not in arg:
            path = resolve_path('/docs', arg)

        if path.endswith('/secrets') and not state.is_admin:
            return CommandResult(output=['cat: secrets: Permission denied'])

        content = self.fs.read_file(path)
        if content is None:
            return CommandResult(output=[f"cat: {arg}: No such file"])
        return CommandResult(output=content.split('\n'))

    def _cmd_whoami(self, args: List[str], state: InterpreterState) -> CommandResult:
        return CommandResult(output=['root' if state.is_admin else 'guest'])

    def _cmd_uname(self, args: List[str], state: InterpreterState) -> CommandResult:
        if args and args[0] == '-a':
            return CommandResult(output=['Linux mc 6.2.0-mc #1 SMP x86_64 GNU/Linux'])
        return CommandResult(output=['Linux'])

    def _cmd_date(self, args: List[str], state: InterpreterState) -> CommandResult:
        return CommandResult(output=[datetime.now().strftime('%a %b %d %Y %H:%M:%S')])

    def _cmd_echo(self, args: List[str], state: InterpreterState) -> CommandResult:
        return CommandResult(output=[' '.join(args)])

    def _cmd_man(self, args: List[str], state: InterpreterState) -> CommandResult:
        cmd = self.commands.get(args[0].lower()) if args else None
        if cmd and (state.is_admin or not cmd.admin_only):
            return CommandResult(output=[f"{cmd.usage}: {cmd.help}"])
        return CommandResult(output=['No manual entry. This is not a real shell.'])

    def _cmd_sudo(self, args: List[str], state: InterpreterState) -> CommandResult:
        if args and args[0].lower() == 'su':
            logger.warning("Terminal alert: sudo su attempted")
            return CommandResult(output=['sudo: Authentication failure'],
                                 state_patch={'alert_active': True},
                                 actions=[TriggerAlert(ALERT_DURATION_MS)])
        return CommandResult(output=['sudo: permission denied'])
