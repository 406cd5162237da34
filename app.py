"""
Parcel Routing Simulator - Operator Dashboard
=============================================

Interactive dashboard for the parcel routing simulation.

Features:
- Parcel creation between hubs with a choice of routing algorithm
- Animated parcel movement on a Folium map
- Incident placement by clicking twice on the map (line + buffer)
- Automatic route recalculation when a parcel runs into an incident
- Live KPIs and parcel table

Run:
    streamlit run app.py
"""

import os
import sys
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

import folium
import pandas as pd
import streamlit as st
from streamlit_folium import st_folium

# Ensure the parcelsim package is importable
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from parcelsim import config, engine
from parcelsim.client import LogisticsClient
from parcelsim.models import (
    Hub,
    IncidentType,
    ParcelState,
    Position,
    RoutingAlgorithm,
    SimulationState,
)
from parcelsim.scenario import load_scenario
from parcelsim.wkt import parse_linestring

# =============================================================================
# PAGE CONFIG
# =============================================================================

st.set_page_config(
    page_title="Parcel Routing Simulator",
    page_icon="🚚",
    layout="wide",
    initial_sidebar_state="expanded"
)

# =============================================================================
# CUSTOM STYLING
# =============================================================================

st.markdown("""
<style>
    .main .block-container {
        padding-top: 1.5rem;
        padding-bottom: 1.5rem;
    }

    /* KPI Cards */
    .kpi-card {
        background: linear-gradient(135deg, #1e3c72 0%, #2a5298 100%);
        border-radius: 14px;
        padding: 1rem;
        color: white;
        text-align: center;
        box-shadow: 0 8px 30px rgba(30, 60, 114, 0.25);
    }

    .kpi-card.green {
        background: linear-gradient(135deg, #11998e 0%, #38ef7d 100%);
    }

    .kpi-card.orange {
        background: linear-gradient(135deg, #f7971e 0%, #ffd200 100%);
    }

    .kpi-card.red {
        background: linear-gradient(135deg, #cb2d3e 0%, #ef473a 100%);
    }

    .kpi-value {
        font-size: 2rem;
        font-weight: 800;
        margin: 0.25rem 0;
    }

    .kpi-label {
        font-size: 0.8rem;
        opacity: 0.9;
        text-transform: uppercase;
        letter-spacing: 1px;
    }

    .section-header {
        font-size: 1.3rem;
        font-weight: 700;
        color: #1a1a2e;
        margin: 1.5rem 0 0.75rem 0;
        padding-bottom: 0.4rem;
        border-bottom: 3px solid #2a5298;
    }

    #MainMenu {visibility: hidden;}
    footer {visibility: hidden;}
</style>
""", unsafe_allow_html=True)

# =============================================================================
# CONSTANTS
# =============================================================================

DEMO_SCENARIO = os.path.join(os.path.dirname(os.path.abspath(__file__)), "data", "douala_demo.json")

STATE_COLORS: Dict[ParcelState, str] = {
    ParcelState.PLANNED: "#7f8c8d",
    ParcelState.TRANSIT: "#2a5298",
    ParcelState.INCIDENT: "#e67e22",
    ParcelState.DELIVERED: "#27ae60",
    ParcelState.FAILED: "#c0392b",
}

INCIDENT_COLORS: Dict[IncidentType, str] = {
    IncidentType.ROAD_CLOSURE: "#e74c3c",
    IncidentType.TRAFFIC: "#e67e22",
    IncidentType.VEHICLE_BREAKDOWN: "#f1c40f",
    IncidentType.WEATHER: "#3498db",
}

# =============================================================================
# SESSION STATE
# =============================================================================


def init_session() -> None:
    """Create the simulation state once per session."""
    if "sim" not in st.session_state:
        st.session_state["sim"] = SimulationState()
        st.session_state["last_tick"] = None
        st.session_state["incident_points"] = []
        st.session_state["last_click"] = None
        st.session_state["event_log"] = []
        st.session_state["local_counter"] = 0


def get_state() -> SimulationState:
    return st.session_state["sim"]


def set_state(state: SimulationState) -> None:
    st.session_state["sim"] = state


def get_client() -> LogisticsClient:
    return LogisticsClient(base_url=config.API_BASE_URL)


def log_event(message: str) -> None:
    """Keep the 30 most recent operator-visible events."""
    events: List[str] = st.session_state["event_log"]
    events.insert(0, f"{datetime.now().strftime('%H:%M:%S')}  {message}")
    del events[30:]


def load_hubs(use_demo: bool) -> None:
    """Load hubs from the backend, or from the demo scenario file."""
    hubs: List[Hub] = []
    if not use_demo:
        hubs = get_client().get_hubs()
    if not hubs and os.path.exists(DEMO_SCENARIO):
        hubs = load_scenario(DEMO_SCENARIO).hubs
        if not use_demo:
            st.sidebar.warning("Backend unreachable, using demo hubs")
    set_state(engine.set_hubs(get_state(), hubs))


# =============================================================================
# ACTIONS
# =============================================================================


def create_parcel(
    pickup: Hub,
    delivery: Hub,
    algorithm: RoutingAlgorithm,
    sender: str,
    recipient: str,
    weight_kg: float,
    offline: bool
) -> None:
    """Register a parcel, ask for its route and add it to the simulation."""
    client = get_client()
    parcel_data: Optional[Dict[str, Any]] = None
    route = None

    if not offline:
        parcel_data = client.create_parcel({
            "senderName": sender,
            "recipientName": recipient,
            "pickupLocation": pickup.hub_id,
            "deliveryLocation": delivery.hub_id,
            "weightKg": weight_kg,
        })
        if parcel_data is not None:
            route = client.calculate_route(parcel_data["id"], pickup.hub_id, delivery.hub_id, algorithm)

    if parcel_data is None:
        st.session_state["local_counter"] += 1
        n = st.session_state["local_counter"]
        parcel_data = {"id": f"local-{n}", "trackingCode": f"LOC-{n:04d}"}
        route = LogisticsClient.fallback_route(pickup.position, delivery.position, algorithm)

    path = parse_linestring(route.geometry) if route is not None else []
    if route is None or not path:
        st.warning(f"No route found for {parcel_data.get('trackingCode')}: parcel kept without route")
        route, path = None, []

    parcel = engine.create_parcel(parcel_data, route, path)
    state = get_state()
    if state.is_playing:
        parcel = engine.start_parcel(parcel)
    set_state(engine.add_parcel(state, parcel))
    log_event(f"Parcel {parcel.tracking_code} created ({route.total_distance_km:.2f} km)" if route
              else f"Parcel {parcel.tracking_code} created without route")


def start_playing() -> None:
    """Play the simulation and start every parcel still waiting."""
    state = engine.play(get_state())
    for parcel in list(state.parcels.values()):
        started = engine.start_parcel(parcel)
        if started is not parcel:
            state = engine.replace_parcel(state, started)
    set_state(state)
    st.session_state["last_tick"] = time.monotonic()


def handle_attributions(attributions: List[engine.IncidentAttribution], offline: bool) -> None:
    """Request a new route for each parcel stopped by an incident."""
    client = get_client()
    for attribution in attributions:
        state = get_state()
        parcel = state.parcels[attribution.parcel_id]
        incident = state.incidents[attribution.incident_id]
        log_event(f"{parcel.tracking_code} hit {incident.incident_type.label}")

        new_route = None
        if not offline and parcel.route is not None:
            new_route = client.recalculate_route(parcel.route.route_id, incident)
        new_path = parse_linestring(new_route.geometry) if new_route is not None else []

        if new_route is not None and new_path:
            parcel = engine.update_parcel_route(parcel, new_route, new_path)
            log_event(f"{parcel.tracking_code} rerouted ({new_route.total_distance_km:.2f} km)")
        else:
            parcel = engine.fail_parcel(parcel)
            log_event(f"{parcel.tracking_code} failed: no alternative route")
        set_state(engine.replace_parcel(get_state(), parcel))


def run_tick(offline: bool) -> None:
    """Advance the simulation by the wall-clock time since the last tick."""
    now = time.monotonic()
    last = st.session_state["last_tick"] or now
    st.session_state["last_tick"] = now

    result = engine.advance(get_state(), (now - last) * 1000)
    set_state(result.state)
    if result.attributions:
        handle_attributions(result.attributions, offline)


def handle_map_click(map_data: Optional[Dict[str, Any]], width_m: float, description: str) -> None:
    """Collect two clicks in placement mode and turn them into an incident."""
    state = get_state()
    if not state.incident_placement_mode or not map_data:
        return

    click = map_data.get("last_clicked")
    if not click or click == st.session_state["last_click"]:
        return
    st.session_state["last_click"] = click

    points: List[Position] = st.session_state["incident_points"]
    points.append(Position(click["lat"], click["lng"]))
    if len(points) < 2:
        st.toast("Click the end of the affected stretch")
        return

    incident = engine.create_incident(
        state.selected_incident_type,
        points[0],
        points[1],
        width_m=width_m,
        description=description,
        parcels=state.parcels.values(),
    )
    state = engine.add_incident(state, incident)
    set_state(engine.toggle_incident_mode(state, None))
    st.session_state["incident_points"] = []
    log_event(f"{incident.incident_type.label} placed, {len(incident.affected_route_ids)} route(s) affected")
    st.rerun()


# =============================================================================
# MAP VISUALIZATION
# =============================================================================


def create_simulation_map(state: SimulationState) -> folium.Map:
    """
    Create a Folium map with hubs, routes, parcels and incidents.

    - Routes: colored by parcel state
    - Incidents: thick line, width proportional to the buffer
    """
    m = folium.Map(
        location=list(config.MAP_CENTER),
        zoom_start=config.MAP_ZOOM,
        tiles="cartodbpositron"
    )

    hub_group = folium.FeatureGroup(name="Hubs")
    for hub in state.hubs:
        folium.Marker(
            location=hub.position.as_tuple(),
            popup=f"{hub.address} ({hub.hub_type})",
            icon=folium.Icon(color="darkblue", icon="home"),
        ).add_to(hub_group)
    hub_group.add_to(m)

    route_group = folium.FeatureGroup(name="Routes")
    parcel_group = folium.FeatureGroup(name="Parcels")
    for parcel in state.parcels.values():
        color = STATE_COLORS[parcel.state]
        if len(parcel.route_path) >= 2:
            folium.PolyLine(
                locations=[p.as_tuple() for p in parcel.route_path],
                weight=4,
                color=color,
                opacity=0.6,
                popup=f"{parcel.tracking_code}: {parcel.route.routing_service or ''}",
            ).add_to(route_group)
        if parcel.current_position is not None:
            folium.CircleMarker(
                location=parcel.current_position.as_tuple(),
                radius=8,
                color=color,
                fill=True,
                fillColor=color,
                fillOpacity=0.9,
                popup=f"{parcel.tracking_code} - {parcel.state.value} - {parcel.progress:.0%}",
            ).add_to(parcel_group)
    route_group.add_to(m)
    parcel_group.add_to(m)

    incident_group = folium.FeatureGroup(name="Incidents")
    for incident in state.incidents.values():
        color = "#95a5a6" if incident.resolved else INCIDENT_COLORS[incident.incident_type]
        folium.PolyLine(
            locations=[incident.start_position.as_tuple(), incident.end_position.as_tuple()],
            weight=max(4, incident.width_m / 5),
            color=color,
            opacity=0.3 if incident.resolved else 0.7,
            popup=f"{incident.incident_type.label}: {incident.description} ({incident.width_m:.0f} m)",
        ).add_to(incident_group)
    incident_group.add_to(m)

    for point in st.session_state["incident_points"]:
        folium.CircleMarker(location=point.as_tuple(), radius=5, color="#e74c3c").add_to(m)

    folium.LayerControl().add_to(m)
    return m


# =============================================================================
# SIDEBAR
# =============================================================================


def render_sidebar() -> Dict[str, Any]:
    """Render the control panel and return the options it sets."""
    st.sidebar.markdown("## 🎛️ Controls")

    st.sidebar.markdown("### 🌐 Backend")
    config.API_BASE_URL = st.sidebar.text_input("Routing API URL", value=config.API_BASE_URL)
    offline = st.sidebar.checkbox(
        "Offline mode",
        value=False,
        help="Straight-line routes, no recalculation (parcels hitting an incident fail)"
    )
    if st.sidebar.button("Load hubs", use_container_width=True) or not get_state().hubs:
        load_hubs(use_demo=offline)

    st.sidebar.markdown("---")
    st.sidebar.markdown("### ▶️ Simulation")
    state = get_state()
    col1, col2 = st.sidebar.columns(2)
    if col1.button("Play", disabled=state.is_playing, use_container_width=True):
        start_playing()
        st.rerun()
    if col2.button("Pause", disabled=not state.is_playing, use_container_width=True):
        set_state(engine.pause(state))
        st.rerun()

    speed = st.sidebar.select_slider(
        "Speed",
        options=list(config.SPEED_OPTIONS),
        value=state.speed,
        format_func=lambda s: f"{s}x",
    )
    if speed != state.speed:
        set_state(engine.set_speed(state, speed))

    config.BASE_SPEED_KMH = float(st.sidebar.slider(
        "Base speed for new parcels (km/h)",
        min_value=10,
        max_value=90,
        value=int(config.BASE_SPEED_KMH),
        step=5,
    ))

    st.sidebar.markdown("---")
    st.sidebar.markdown("### ⚠️ Incidents")
    incident_type = st.sidebar.selectbox(
        "Type",
        options=list(IncidentType),
        format_func=lambda t: t.label,
    )
    width_m = st.sidebar.number_input(
        "Buffer width (m)",
        min_value=5.0,
        max_value=1000.0,
        value=float(config.DEFAULT_INCIDENT_WIDTH_M),
        step=5.0,
    )
    description = st.sidebar.text_input("Description", value="")

    state = get_state()
    if state.incident_placement_mode:
        st.sidebar.info(f"Placing {state.selected_incident_type.label}: click start and end on the map")
        if st.sidebar.button("Cancel placement", use_container_width=True):
            set_state(engine.toggle_incident_mode(state, None))
            st.session_state["incident_points"] = []
            st.rerun()
    elif st.sidebar.button("Place incident", use_container_width=True):
        set_state(engine.toggle_incident_mode(state, incident_type))
        st.rerun()

    for incident in get_state().active_incidents:
        if st.sidebar.button(f"✅ Resolve {incident.incident_type.label} ({incident.incident_id[:8]})",
                             key=f"resolve-{incident.incident_id}", use_container_width=True):
            set_state(engine.resolve_incident_in_state(get_state(), incident.incident_id))
            log_event(f"{incident.incident_type.label} resolved")
            st.rerun()

    return {"offline": offline, "width_m": width_m, "description": description}


def render_parcel_form(offline: bool) -> None:
    """Parcel creation form."""
    hubs = list(get_state().hubs)
    with st.expander("📦 New parcel", expanded=not get_state().parcels):
        if len(hubs) < 2:
            st.info("At least two hubs are needed. Load hubs from the sidebar.")
            return

        with st.form("parcel_form", clear_on_submit=True):
            col1, col2 = st.columns(2)
            pickup = col1.selectbox("Pickup hub", hubs, format_func=lambda h: h.address)
            delivery = col2.selectbox("Delivery hub", hubs, index=1, format_func=lambda h: h.address)
            sender = col1.text_input("Sender", value="Demo sender")
            recipient = col2.text_input("Recipient", value="Demo recipient")
            algorithm = col1.selectbox("Algorithm", list(RoutingAlgorithm), format_func=lambda a: a.value)
            weight_kg = col2.number_input("Weight (kg)", min_value=0.1, value=1.0, step=0.5)
            submitted = st.form_submit_button("Create parcel")

        if submitted:
            if pickup.hub_id == delivery.hub_id:
                st.error("Pickup and delivery hubs must differ")
                return
            create_parcel(pickup, delivery, algorithm, sender, recipient, weight_kg, offline)


# =============================================================================
# KPI DISPLAY
# =============================================================================


def render_kpi_row(stats: engine.SimulationStats) -> None:
    """Render the top KPI cards."""
    cards = [
        ("", "Parcels", stats.total),
        ("", "In Transit", stats.in_transit),
        ("green", "Delivered", stats.delivered),
        ("orange" if stats.with_incidents == 0 else "red", "With Incidents", stats.with_incidents),
        ("", "Total Distance", f"{stats.total_distance_km:.1f} km"),
    ]
    for col, (style, label, value) in zip(st.columns(len(cards)), cards):
        with col:
            st.markdown(f"""
            <div class="kpi-card {style}">
                <div class="kpi-label">{label}</div>
                <div class="kpi-value">{value}</div>
            </div>
            """, unsafe_allow_html=True)


def render_parcel_table(state: SimulationState) -> None:
    """Render the parcel list."""
    if not state.parcels:
        return

    rows = []
    for parcel in state.parcels.values():
        eta = engine.calculate_eta(parcel)
        rows.append({
            "Tracking": parcel.tracking_code,
            "State": parcel.state.value,
            "Progress": f"{parcel.progress:.0%}",
            "Distance (km)": round(parcel.route.total_distance_km, 2) if parcel.route else None,
            "Algorithm": parcel.route.routing_service if parcel.route else "",
            "ETA": eta.strftime("%H:%M:%S") if eta else "",
            "Delivered at": parcel.actual_arrival.strftime("%H:%M:%S") if parcel.actual_arrival else "",
            "Incidents": len(parcel.affected_by_incidents),
        })
    st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)


# =============================================================================
# MAIN APPLICATION
# =============================================================================


def main():
    """Main application entry point."""
    init_session()

    st.markdown("""
    <div style="text-align: center; padding: 0.5rem 0 1rem 0;">
        <h1 style="font-size: 2.4rem; font-weight: 800; color: #1e3c72; margin-bottom: 0.25rem;">
            Parcel Routing Simulator
        </h1>
        <p style="font-size: 1rem; color: #666;">Routes, incidents and live recalculation</p>
    </div>
    """, unsafe_allow_html=True)

    options = render_sidebar()
    offline = options["offline"]

    state = get_state()
    if state.is_playing:
        run_tick(offline)
        state = get_state()

    render_kpi_row(engine.get_simulation_stats(state.parcels.values()))

    render_parcel_form(offline)

    st.markdown('<div class="section-header">🗺️ Live map</div>', unsafe_allow_html=True)
    map_data = st_folium(
        create_simulation_map(get_state()),
        width=None,
        height=550,
        use_container_width=True,
        key="simulation_map",
    )
    handle_map_click(map_data, options["width_m"], options["description"])

    col1, col2 = st.columns([2, 1])
    with col1:
        st.markdown('<div class="section-header">📦 Parcels</div>', unsafe_allow_html=True)
        render_parcel_table(get_state())
    with col2:
        st.markdown('<div class="section-header">📝 Events</div>', unsafe_allow_html=True)
        st.text("\n".join(st.session_state["event_log"]) or "No events yet")

    if get_state().is_playing:
        time.sleep(config.UPDATE_INTERVAL_MS / 1000)
        st.rerun()


if __name__ == "__main__":
    main()
