"""
MCC Streamlit Application
=========================
Web host for the mission console: the terminal transcript on the left,
the map with the UXV overlay on the right.

Architecture: the world registry is a shared read-only singleton; each
browser session owns its own MissionConsole (terminal + vehicle). The
map fragment reruns on a fixed interval and drives the frame tick.
"""

import os
import logging
from pathlib import Path

import pydeck as pdk
import streamlit as st
from dotenv import load_dotenv

from console import MissionConsole
from registry import WorldRegistry, GeoPoint
from viewport import MapViewport

# Load environment variables from .env
load_dotenv()

logging.basicConfig(level=os.getenv("MCC_LOG_LEVEL", "INFO"),
                    format="[MCC] %(name)s %(levelname)s: %(message)s")


# ─────────────────────────────────────────────────────────────────
# Configuration
# ─────────────────────────────────────────────────────────────────

WORLD_FILE = Path(os.getenv("MCC_WORLD_FILE", Path(__file__).parent / "world.json"))
TRAIL_MAX = int(os.getenv("MCC_TRAIL_MAX", "50"))
FRAME_INTERVAL = os.getenv("MCC_FRAME_INTERVAL", "0.5s")
START_CENTER = GeoPoint(float(os.getenv("MCC_START_LNG", "-98.5")),
                        float(os.getenv("MCC_START_LAT", "39.8")))
START_ZOOM = float(os.getenv("MCC_START_ZOOM", "3"))


# ─────────────────────────────────────────────────────────────────
# Page Setup
# ─────────────────────────────────────────────────────────────────

st.set_page_config(
    page_title="Mission Control",
    page_icon="🛰️",
    layout="wide",
)

st.markdown("""
    <style>
    /* Terminal transcript */
    .mcc-terminal {
        background: #050b08;
        color: #45ffb0;
        font-family: monospace;
        font-size: 0.85rem;
        padding: 0.75rem;
        border: 1px solid rgba(69,255,176,0.4);
        height: 460px;
        overflow-y: auto;
        white-space: pre-wrap;
    }
    .mcc-alert {
        border-color: #ff4f4f !important;
        color: #ff8080 !important;
    }
    </style>
""", unsafe_allow_html=True)


@st.cache_resource
def get_shared_registry():
    """
    Load the world registry once.
    Shared across ALL sessions; it is never written after load.
    """
    registry = WorldRegistry.load(WORLD_FILE)
    print(f"[MCC] Loaded world: {registry.meta.get('name')} ({len(registry.geofences)} geofences)")
    return registry


# ─────────────────────────────────────────────────────────────────
# Session State Initialization (Per-User)
# ─────────────────────────────────────────────────────────────────

def init_session_state():
    """Initialize per-user session state."""
    if "console" not in st.session_state:
        viewport = MapViewport(center=START_CENTER, zoom=START_ZOOM)
        console = MissionConsole(get_shared_registry(), viewport=viewport, trail_max=TRAIL_MAX)
        console.terminal.open()
        st.session_state.console = console


init_session_state()


def get_console() -> MissionConsole:
    return st.session_state.console


# ─────────────────────────────────────────────────────────────────
# Rendering
# ─────────────────────────────────────────────────────────────────

def render_terminal():
    console = get_console()
    term = console.terminal.state
    css = "mcc-terminal mcc-alert" if term.alert_active else "mcc-terminal"
    lines = [line.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
             for line in term.transcript]
    body = "<br>".join(lines)
    st.markdown(f'<div class="{css}">{body}</div>', unsafe_allow_html=True)
    st.caption(console.terminal.prompt)


def fence_rgb(fence, alpha):
    """First palette colour of a geofence as an RGBA list."""
    hex_color = (fence.colors[0] if fence.colors else "#45ffb0").lstrip("#")
    return [int(hex_color[i:i + 2], 16) for i in (0, 2, 4)] + [alpha]


def build_layers(snapshot):
    """pydeck layers for geofences, trail, vehicle, target and shots."""
    registry = get_shared_registry()
    layers = [
        pdk.Layer(
            "PolygonLayer",
            data=[{
                "key": g.key,
                "fill": fence_rgb(g, 25),
                "line": fence_rgb(g, 160),
                "polygon": [[g.box.min_lng, g.box.min_lat], [g.box.max_lng, g.box.min_lat],
                            [g.box.max_lng, g.box.max_lat], [g.box.min_lng, g.box.max_lat]],
            } for g in registry.geofences],
            get_polygon="polygon",
            get_fill_color="fill",
            get_line_color="line",
            line_width_min_pixels=1,
            pickable=True,
        ),
    ]

    if not snapshot['active'] and not snapshot['explosions']:
        return layers

    trail = [[p['lng'], p['lat']] for p in snapshot['trail']]
    if snapshot['position']:
        trail.append([snapshot['position']['lng'], snapshot['position']['lat']])
    if len(trail) > 1:
        layers.append(pdk.Layer(
            "PathLayer", data=[{"path": trail}], get_path="path",
            get_color=[69, 255, 176, 215], width_min_pixels=2))

    markers = []
    if snapshot['position']:
        markers.append({**snapshot['position'], "color": [69, 255, 176, 255], "r": 6})
    if snapshot['target']:
        markers.append({**snapshot['target'], "color": [124, 243, 255, 180], "r": 4})
    for p in snapshot['projectiles']:
        markers.append({**p['position'], "color": [255, 200, 80, 230], "r": 4})
    for e in snapshot['explosions']:
        alpha = int(255 * e['opacity'])
        markers.append({**e['location'], "color": [255, 120, 40, alpha], "r": e['radius']})
    layers.append(pdk.Layer(
        "ScatterplotLayer", data=markers, get_position="[lng, lat]",
        get_fill_color="color", get_radius="r", radius_units="pixels"))

    beams = [{"from": [b['start']['lng'], b['start']['lat']],
              "to": [b['end']['lng'], b['end']['lat']],
              "width": 1 + 2 * b['power']} for b in snapshot['lasers']]
    if beams:
        layers.append(pdk.Layer(
            "LineLayer", data=beams, get_source_position="from", get_target_position="to",
            get_color=[255, 79, 216, 220], get_width="width"))
    return layers


@st.fragment(run_every=FRAME_INTERVAL)
def map_frame():
    """Frame loop: tick the simulation, then draw it."""
    console = get_console()
    snapshot = console.tick()
    center = console.viewport.get_center()

    st.pydeck_chart(pdk.Deck(
        layers=build_layers(snapshot),
        initial_view_state=pdk.ViewState(longitude=center.lng, latitude=center.lat,
                                         zoom=console.viewport.zoom),
        map_style=None,
    ))

    if snapshot['active']:
        pos = snapshot['position']
        w = snapshot['weapon']
        st.caption(
            f"UXV {pos['lng']:.4f}, {pos['lat']:.4f} · {snapshot['speed_mps']:g} m/s · "
            f"{snapshot['altitude_m']:g} m · {w['type']} ({w['charge_power']:.2f}) · "
            f"patrol {snapshot['patrol']['mode']}")
    effects = console.ambient_effects()
    if effects:
        st.caption("Ambient: " + ", ".join(effects))


# ─────────────────────────────────────────────────────────────────
# Layout
# ─────────────────────────────────────────────────────────────────

left, right = st.columns([2, 3])

with left:
    st.subheader("MAP-TERM")
    if get_console().terminal.state.is_open:
        render_terminal()
    elif st.button("Open terminal"):
        get_console().terminal.open()
        st.rerun()

with right:
    map_frame()

if prompt := st.chat_input("Type a command..."):
    console = get_console()
    console.terminal.open()
    console.submit(prompt)
    st.rerun()
