import asyncio
from pathlib import Path
import sys

import streamlit as st
import pandas as pd

# Ensure project root on sys.path
PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from emotion_detection.history.store import JsonlHistoryStore, save_analysis
from emotion_detection.inference.predict_emotion import analyze_combined, analyze_image, analyze_text
from emotion_detection.utils.errors import EmotionDetectionError

st.set_page_config(page_title="Emotion Detection", page_icon="🎭", layout="wide")
st.title("🎭 Emotion Detection")
st.caption("Enter text, take a camera snapshot, or both. Results can be saved to your history.")

store = JsonlHistoryStore()


def _render_result(title: str, result):
    if result is None:
        st.warning("No result to display.")
        return
    st.subheader(title)
    c1, c2 = st.columns([1, 2])
    with c1:
        st.metric(label="Dominant emotion", value=result.dominant_emotion)
        st.write(f"Confidence: {result.confidence:.1%}")
        if result.mixed_emotions:
            st.write("Mixed: " + ", ".join(result.mixed_emotions))
    with c2:
        df = pd.DataFrame({
            "emotion": [e.name for e in result.emotions],
            "score": [e.score for e in result.emotions],
        }).set_index("emotion")
        st.bar_chart(df)
    st.info(result.analysis_summary)
    with st.expander("Raw result"):
        st.json(result.model_dump())


text_tab, camera_tab, combined_tab, history_tab = st.tabs(["Text", "Camera", "Combined", "History"])

with text_tab:
    with st.form("text_form"):
        text_input = st.text_area("Text", placeholder="How are you feeling today?")
        save_text = st.checkbox("Save to history", value=True)
        if st.form_submit_button("Analyze", type="primary"):
            if not text_input.strip():
                st.warning("Please enter some text to analyze.")
            else:
                with st.spinner("Analyzing..."):
                    try:
                        result = asyncio.run(analyze_text(text_input.strip()))
                        _render_result("Text analysis", result)
                        if save_text:
                            save_analysis(store, "text", result, text_input.strip())
                    except EmotionDetectionError as e:
                        st.error(f"Analysis failed: {e.message}")

with camera_tab:
    frame = st.camera_input("Capture a frame")
    upload = st.file_uploader("...or upload an image", type=["png", "jpg", "jpeg", "webp"])
    source = frame or upload
    if source is not None and st.button("Analyze image", type="primary"):
        with st.spinner("Analyzing..."):
            try:
                result = asyncio.run(analyze_image(source.getvalue()))
                _render_result("Facial expression analysis", result)
                save_analysis(store, "video", result)
            except (EmotionDetectionError, ValueError) as e:
                st.error(f"Analysis failed: {e}")

with combined_tab:
    combined_text = st.text_area("Text", key="combined_text")
    combined_frame = st.camera_input("Capture a frame", key="combined_frame")
    if st.button("Run combined analysis", type="primary"):
        text_val = combined_text.strip() or None
        image_val = combined_frame.getvalue() if combined_frame is not None else None
        if text_val is None and image_val is None:
            st.warning("Please enter text and/or capture a frame.")
        else:
            with st.spinner("Analyzing..."):
                res = asyncio.run(analyze_combined(text_val, image_val))
            col_t, col_i = st.columns(2)
            with col_t:
                if res.text is not None:
                    _render_result("Text", res.text)
                    save_analysis(store, "combined", res.text, text_val)
                elif "text" in res.errors:
                    st.error(f"Text analysis failed: {res.errors['text']}")
            with col_i:
                if res.image is not None:
                    _render_result("Video", res.image)
                    save_analysis(store, "combined", res.image)
                elif "image" in res.errors:
                    st.error(f"Video analysis failed: {res.errors['image']}")

with history_tab:
    records = store.select(limit=50)
    if not records:
        st.info("No saved analyses yet.")
    for rec in records:
        with st.expander(f"{rec.created_at:%Y-%m-%d %H:%M} | {rec.analysis_type} | {rec.dominant_emotion} ({rec.confidence:.0%})"):
            if rec.input_text:
                st.code(rec.input_text)
            st.write(rec.summary)
            if st.button("Delete", key=f"del-{rec.id}"):
                store.delete(rec.id)
                st.rerun()
