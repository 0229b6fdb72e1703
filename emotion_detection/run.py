import argparse
import asyncio
import json

from emotion_detection.history.store import JsonlHistoryStore, save_analysis
from emotion_detection.inference.predict_emotion import analyze_combined, analyze_image, analyze_text
from emotion_detection.utils.errors import EmotionDetectionError

# CLI wrapper to run emotion analysis from the command line


async def _run(args) -> dict:
    if args.text and args.image:
        res = await analyze_combined(args.text, args.image, args.backend, args.backend)
        if args.save:
            store = JsonlHistoryStore()
            if res.text is not None:
                save_analysis(store, "combined", res.text, args.text)
            if res.image is not None:
                save_analysis(store, "combined", res.image)
        return res.model_dump()
    if args.text:
        res = await analyze_text(args.text, args.backend)
        if args.save:
            save_analysis(JsonlHistoryStore(), "text", res, args.text)
        return res.model_dump()
    res = await analyze_image(args.image, args.backend)
    if args.save:
        save_analysis(JsonlHistoryStore(), "video", res)
    return res.model_dump()


def main():
    parser = argparse.ArgumentParser(description="Emotion Detection CLI")
    parser.add_argument("--text", type=str, default=None, help="Text input (optional)")
    parser.add_argument("--image", type=str, default=None, help="Path to face image (optional)")
    parser.add_argument("--backend", type=str, default=None, help="local | remote | deepface (image only)")
    parser.add_argument("--save", action="store_true", help="Append the result to the history file")
    parser.add_argument("--serve", action="store_true", help="Start the HTTP API instead")
    parser.add_argument("--host", type=str, default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()
    if args.serve:
        import uvicorn
        uvicorn.run("emotion_detection.api.app:app", host=args.host, port=args.port)
        return
    if not args.text and not args.image:
        parser.error("Provide --text and/or --image")
    try:
        res = asyncio.run(_run(args))
    except (EmotionDetectionError, ValueError) as e:
        parser.exit(1, f"Analysis failed: {e}\n")
    print(json.dumps(res, indent=2))


if __name__ == "__main__":
    main()
