#!/usr/bin/env python3
"""
Inquizit - Flask Web Application
JSON API for free-form and spaced-repetition quizit sessions.
Requires OpenAI API for scenario, reasoning and theme seed generation.
"""

import os
import sys
import traceback
import argparse
from typing import List, Optional, Dict, Any, Tuple

from flask import Flask, request, jsonify

# Check for test mode
TEST_MODE = os.environ.get("TEST_MODE", "0") == "1"
DEFAULT_MAX_COMPLETION_TOKENS = 1024


try:
    import openai
    from openai import OpenAI
except ImportError:
    if not TEST_MODE:
        print("Error: OpenAI library is required")
        print("Please install it with: pip install openai")
        sys.exit(1)
    else:
        OpenAI = None  # type: ignore

# Global variables for AI clients
client = None
ai_model = None

# Add the current directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from inquizit import db, quizits, sessions
from inquizit.errors import AuthenticationError, QuizitError, ValidationError

# Check for debug mode
DEBUG = os.environ.get("DEBUG", "0") == "1"
DEFAULT_MODEL = "gpt-4o-mini"


class OpenAIModel:
    """Wrapper for OpenAI API to match expected interface."""
    def __init__(self, client: Any, model_name: str = DEFAULT_MODEL):
        self.client = client
        self.model_name = model_name

    def prompt(self, prompt_text: str, system: str = "", temperature: float = 1.0,
               max_tokens: int = DEFAULT_MAX_COMPLETION_TOKENS) -> Any:
        """Send prompt to OpenAI and return response."""
        messages: List[Dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt_text})

        # Log the API call details
        if DEBUG:
            print(f"🤖 OpenAI API Call Details:")
            print(f"   Model: {self.model_name}")
            print(f"   System prompt length: {len(system) if system else 0} characters")
            print(f"   User prompt length: {len(prompt_text)} characters")
            print(f"   Temperature: {temperature}, max tokens: {max_tokens}")

        try:
            response = self.client.chat.completions.create(
                model=self.model_name,
                messages=messages,  # type: ignore
                temperature=temperature,
                max_completion_tokens=max_tokens,
            )

            content = response.choices[0].message.content or ""

            # Log the response details
            if DEBUG:
                print(f"✅ OpenAI API Response:")
                print(f"   Response length: {len(content)} characters")
                print(f"   Usage: {response.usage}")

            # Return object with text() method to match expected interface
            class Response:
                def __init__(self, content: str) -> None:
                    self.content = content
                def text(self) -> str:
                    return self.content

            return Response(content)

        except Exception as e:
            if DEBUG:
                print(f"❌ OpenAI API call failed: {str(e)}")
            raise

def init_ai(api_key: Optional[str] = None,
            base_url: Optional[str] = None,
            model_name: str = DEFAULT_MODEL) -> None:
    """Initialize the OpenAI client and model."""
    global client, ai_model

    if TEST_MODE:
        return

    if not api_key:
        api_key = os.environ.get("OPENAI_API_KEY")

    if not api_key:
        print("Warning: No API key provided. AI features will be disabled.")
        return

    if OpenAI is None:
        print("Error: OpenAI library is required but not installed.")
        return

    try:
        client_kwargs = {"api_key": api_key}
        if base_url:
            client_kwargs["base_url"] = base_url

        client = OpenAI(**client_kwargs)
        ai_model = OpenAIModel(client, model_name=model_name)

        print(f"✅ AI initialized with model: {model_name}")

    except Exception as e:
        print(f"❌ Failed to initialize AI: {e}")

app = Flask(__name__)
app.secret_key = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')

# Try to initialize with environment variables by default
if not TEST_MODE:
    init_ai()

@app.before_request
def initialize_app() -> None:
    """Initialize the database if needed."""
    if not hasattr(app, '_database_initialized'):
        try:
            if not db.is_db_initialized():
                db.init_db()
                print("✅ Database initialized on startup")
        except Exception as e:
            print(f"❌ Database startup check failed: {str(e)}")
        setattr(app, "_database_initialized", True)


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _current_user() -> str:
    """The bearer token is the opaque user id handed over by the auth layer."""
    header = request.headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        raise AuthenticationError("Missing or malformed Authorization header")
    return token.strip()


def _error_response(e: Exception, action: str) -> Tuple[Any, int]:
    if isinstance(e, QuizitError):
        if DEBUG:
            print(f"⚠️ {action}: {e.kind}: {e}")
        return jsonify(e.to_dict()), e.status
    print(f"❌ Error {action}: {e}")
    if DEBUG:
        traceback.print_exc()
    return jsonify({'status': 'error', 'error': 'internal_error', 'message': f'Error: {str(e)}'}), 500


@app.route('/api/sessions', methods=['POST'])
def api_create_session() -> Any:
    """Create a free-form session over an explicit list of cards."""
    try:
        data = _json_body()
        result = sessions.create_free_form_session(
            data.get('cardIds'),
            theme=data.get('theme'),
            is_paired_mode=data.get('isPairedMode', False),
        )
        return jsonify(result)
    except Exception as e:
        return _error_response(e, "creating session")

@app.route('/api/spaced_repetition_sessions', methods=['POST'])
def api_create_spaced_repetition_session() -> Any:
    """Create a spaced-repetition session from the user's due and new cards."""
    try:
        user_id = _current_user()
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        result = sessions.create_spaced_repetition_session(
            user_id,
            theme=data.get('theme'),
            is_paired_mode=data.get('isPairedMode', False),
            review_card_order=data.get('reviewCardOrder', 'ordered'),
            card_interleaving=data.get('cardInterleaving', 'review-first'),
        )
        return jsonify(result)
    except Exception as e:
        return _error_response(e, "creating spaced-repetition session")

@app.route('/api/next_item', methods=['POST'])
def api_next_item() -> Any:
    """Select the next card(s) for a session and generate a quizit for them."""
    try:
        data = _json_body()
        result = sessions.get_next_item(
            data.get('sessionId'),
            data.get('currentCardIds') or [],
            model=ai_model,
        )
        return jsonify(result)
    except Exception as e:
        return _error_response(e, "getting next item")

@app.route('/api/update_scores', methods=['POST'])
def api_update_scores() -> Any:
    """Record the user's recognition and reasoning scores for one card of a quizit."""
    try:
        data = _json_body()
        result = sessions.update_scores(
            data.get('sessionId'),
            data.get('quizitId'),
            data.get('cardId'),
            data.get('recognitionScore'),
            data.get('reasoningScore'),
        )
        return jsonify(result)
    except Exception as e:
        return _error_response(e, "updating scores")

@app.route('/api/quizits/single', methods=['POST'])
def api_single_quizit() -> Any:
    """Generate a quizit for one card outside of any session."""
    try:
        data = _json_body()
        card_id = data.get('cardId')
        if not isinstance(card_id, str) or not card_id:
            raise ValidationError("cardId is required")
        quizit = quizits.generate_single_card_quizit(card_id, ai_model)
        return jsonify({'items': [face.to_dict() for face in quizit.faces]})
    except Exception as e:
        return _error_response(e, "generating single-card quizit")

@app.route('/api/quizits/paired', methods=['POST'])
def api_paired_quizit() -> Any:
    """Generate one quizit that tests two cards at once, outside of any session."""
    try:
        data = _json_body()
        card_id_1 = data.get('cardId1')
        card_id_2 = data.get('cardId2')
        if not isinstance(card_id_1, str) or not card_id_1 or not isinstance(card_id_2, str) or not card_id_2:
            raise ValidationError("cardId1 and cardId2 are required")
        if card_id_1 == card_id_2:
            raise ValidationError("cardId1 and cardId2 must be different cards")
        quizit = quizits.generate_paired_quizit(card_id_1, card_id_2, ai_model)
        return jsonify({'items': [face.to_dict() for face in quizit.faces]})
    except Exception as e:
        return _error_response(e, "generating paired quizit")

@app.route('/ai_status')
def ai_status() -> Any:
    """Report whether a text-generation model is configured."""
    return jsonify({
        'status': 'success',
        'ai_available': ai_model is not None,
        'model': ai_model.model_name if isinstance(ai_model, OpenAIModel) else None,
    })


def get_local_ip():
    """Attempt to determine the local network IP address."""
    import socket
    try:
        # Connect to an external server (doesn't actually send data)
        # to determine the interface used for internet access
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        s.connect(("8.8.8.8", 80))
        local_ip = s.getsockname()[0]
        s.close()
        return local_ip
    except Exception:
        return "127.0.0.1"


def cli_overrides_ai(args: argparse.Namespace) -> bool:
    """True when command-line flags ask for a different key or model than startup used."""
    return bool(args.openai_key or args.openrouter_key or args.model != DEFAULT_MODEL)


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Inquizit quizit service')
    parser.add_argument('--host', help='Host IP to bind to (default: auto-detect local IP)')
    parser.add_argument('--port', type=int, default=5000, help='Port to bind to (default: 5000)')
    parser.add_argument('--openai-key', help='OpenAI API Key')
    parser.add_argument('--openrouter-key', help='OpenRouter API Key (overrides OpenAI key)')
    parser.add_argument('--model', default=DEFAULT_MODEL, help='AI model name')
    parser.add_argument('--debug', action='store_true', help='Enable debug mode')

    args = parser.parse_args()

    if args.debug:
        DEBUG = True

    # Re-initialize AI if arguments are provided
    if cli_overrides_ai(args):
        api_key = args.openrouter_key or args.openai_key
        base_url = "https://openrouter.ai/api/v1" if args.openrouter_key else None

        init_ai(
            api_key=api_key,
            base_url=base_url,
            model_name=args.model,
        )

    # Initialize database
    try:
        if not db.is_db_initialized():
            db.init_db()
            print("✅ Database initialized")
    except Exception as e:
        print(f"❌ Database initialization failed: {str(e)}")

    host = args.host or get_local_ip()
    print(f"🚀 Starting server on http://{host}:{args.port}")
    app.run(debug=DEBUG, host=host, port=args.port)
