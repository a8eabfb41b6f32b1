"""Chat proxies for career advice (signed-in users) and health information (public)."""
from flask import Blueprint, jsonify

from utils.chat_assistant import CAREER_PROFILE, MEDICAL_PROFILE, respond
from utils.decorators import auth_required
from utils.errors import ValidationError
from utils.payloads import json_body

chat_bp = Blueprint("chat", __name__, url_prefix="/api/chat")


def _chat_input(missing_message: str):
    body = json_body()
    message = body.get("message")
    if not isinstance(message, str) or not message.strip():
        raise ValidationError(missing_message)
    history = body.get("history")
    if not isinstance(history, list):
        history = []
    return message.strip(), history


@chat_bp.route("/gpt", methods=["POST"])
@chat_bp.route("/career", methods=["POST"])
@auth_required
def career_chat():
    message, history = _chat_input("Message is required")
    result = respond(CAREER_PROFILE, message, history)
    if result["fallback"]:
        return jsonify({"message": result["text"], "fallback": True})
    return jsonify({"message": result["text"], "model": result.get("model")})


@chat_bp.route("", methods=["POST"])
@chat_bp.route("/medical", methods=["POST"])
def medical_chat():
    message, history = _chat_input("No message provided")
    result = respond(MEDICAL_PROFILE, message, history)
    payload = {"reply": result["text"]}
    if result["fallback"]:
        payload["fallback"] = True
    return jsonify(payload)
