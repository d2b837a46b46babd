"""Streamlit dashboard for the maintenance backend.

Run with ``streamlit run src/wartungsteile/frontend.py``. Talks to the backend
directly with ``requests``; the figures are prepared by
:mod:`wartungsteile.dashboard`.
"""

import requests
import streamlit as st

from wartungsteile import config
from wartungsteile.dashboard import due_frame, status_frame, stock_frame, summarize, trend_frame
from wartungsteile.models import Machine, MaintenancePart

REQUEST_TIMEOUT = (config.CONNECT_TIMEOUT_SECONDS, config.TIMEOUT_SECONDS)


def backend_get(path, token, params=None):
    headers = {config.API_KEY_HEADER: config.API_KEY, "Authorization": f"Bearer {token}"}
    return requests.get(config.BACKEND_URL + path, headers=headers, params=params, timeout=REQUEST_TIMEOUT)


def load_metrics(token):
    response = backend_get("/dashboard/metrics", token)
    if response.status_code == 200:
        return response.json(), "backend"
    # older backends: summarize the plain lists
    machines = backend_get("/Machines", token)
    parts = backend_get("/MaintenanceParts", token)
    machines.raise_for_status()
    parts.raise_for_status()
    return (
        summarize(
            [Machine.from_api(m) for m in machines.json()],
            [MaintenancePart.from_api(p) for p in parts.json()],
        ),
        "fallback",
    )


st.set_page_config(page_title="Wartungsteile Dashboard", page_icon="🛠️", layout="wide")

st.title("🛠️ Wartungsteile Dashboard")
st.caption(f"Backend: {config.BACKEND_URL}")

# 1. Login
if "token" not in st.session_state:
    with st.form("login"):
        username = st.text_input("Benutzername")
        password = st.text_input("Passwort", type="password")
        submitted = st.form_submit_button("Anmelden")
    if submitted:
        try:
            response = requests.post(
                config.BACKEND_URL + "/auth/login",
                json={"username": username, "password": password},
                headers={config.API_KEY_HEADER: config.API_KEY},
                timeout=REQUEST_TIMEOUT,
            )
            if response.status_code == 200:
                st.session_state["token"] = response.json()["accessToken"]
                st.rerun()
            else:
                st.error(f"Anmeldung fehlgeschlagen ({response.status_code}): {response.text[:200]}")
        except requests.exceptions.ConnectionError:
            st.error(config.ERROR_MESSAGES["network"])
    st.stop()

token = st.session_state["token"]

with st.sidebar:
    months = st.slider("Trend-Zeitraum (Monate)", 3, 24, 6)
    if st.button("Abmelden"):
        del st.session_state["token"]
        st.rerun()

# 2. Figures
try:
    with st.spinner("Lade Kennzahlen..."):
        metrics, source = load_metrics(token)
        trends_response = backend_get("/dashboard/trends", token, params={"months": months})
        due_response = backend_get("/dashboard/maintenance-due", token)
except requests.exceptions.ConnectionError:
    st.error(config.ERROR_MESSAGES["network"])
    st.stop()
except requests.exceptions.Timeout:
    st.error(config.ERROR_MESSAGES["timeout"])
    st.stop()
except requests.exceptions.HTTPError as ex:
    if ex.response is not None and ex.response.status_code == 401:
        del st.session_state["token"]
        st.error(config.ERROR_MESSAGES["session_expired"])
    else:
        st.error(config.ERROR_MESSAGES["server"])
    st.stop()

if source == "fallback":
    st.info("Dashboard-Endpunkte nicht verfügbar, Kennzahlen aus Maschinen- und Teileliste berechnet.")

m = metrics.get("machines", {})
p = metrics.get("parts", {})
col1, col2, col3, col4 = st.columns(4)
col1.metric("Maschinen", m.get("total", 0))
col2.metric("In Wartung", m.get("inMaintenance", 0))
col3.metric("Nachbestellen", p.get("reorderRequired", 0))
col4.metric("Lagerwert", f"{p.get('totalValue', 0):,.2f} €")

left, right = st.columns(2)
left.subheader("Maschinenstatus")
left.bar_chart(status_frame(metrics))
right.subheader("Lagerbestand")
right.bar_chart(stock_frame(metrics))

st.subheader("Wartungen pro Monat")
trends = trends_response.json() if trends_response.status_code == 200 else {}
trend_df = trend_frame(trends)
if trend_df.empty:
    st.write("Keine Trenddaten vorhanden.")
else:
    st.line_chart(trend_df[["Wartungen", "Ersetzte Teile"]])

st.subheader("Fällige Wartungen")
due = due_response.json() if due_response.status_code == 200 else []
st.dataframe(due_frame(due), use_container_width=True)
