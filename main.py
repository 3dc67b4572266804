from flask import Flask, request, jsonify
from flask_cors import CORS
from contract_engine import ContractProcessor
from contract_engine.output import DEFAULT_SIGN_LINK_BASE
import os
import logging

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Base URL of the public signing page (sign links are {base}/{token})
SIGN_LINK_BASE = os.environ.get("CONTRACT_SIGNATURE_URL", DEFAULT_SIGN_LINK_BASE)

app = Flask(__name__)

# Enable CORS for all routes (the back-office front end runs on another origin)
CORS(app)

# Initialize the contract processor
processor = ContractProcessor(sign_link_base=SIGN_LINK_BASE)


@app.route("/api", methods=["GET"])
def api_info():
    """API information endpoint"""
    return jsonify({
        "status": "ok",
        "message": "Rental Contract Engine API",
        "version": "1.0",
        "endpoints": {
            "permissions": "/permissions [POST]",
            "contract_actions": "/contracts/actions [POST]",
            "contract_pricing": "/contracts/pricing [POST]",
            "health": "/health [GET]"
        }
    }), 200


@app.route("/health", methods=["GET"])
def health():
    """Health check for monitoring"""
    return jsonify({"status": "healthy"}), 200


@app.route("/permissions", methods=["POST"])
def permissions():
    """Permission set of a role on a contract status, for pre-disabling controls"""
    return _handle(processor.permissions_from_dict)


@app.route("/contracts/actions", methods=["POST"])
def contract_action():
    """
    Perform a lifecycle action on a contract
    """
    return _handle(processor.process_from_dict, log_action=True)


@app.route("/contracts/pricing", methods=["POST"])
def contract_pricing():
    """Recompute the financial snapshot of a contract"""
    return _handle(processor.pricing_from_dict)


def _handle(operation, log_action=False):
    try:
        # Get input data
        input_data = request.get_json(force=True, silent=True)

        if not input_data:
            return jsonify({
                "error": "No input data provided",
                "status": "failed"
            }), 400

        if log_action:
            action = input_data.get("action", "Unknown") if isinstance(input_data, dict) else "Unknown"
            logger.info(f"Processing contract action: {action}")

        result = operation(input_data)

        return jsonify(result), 200

    except (ValueError, KeyError, TypeError) as e:
        # Validation errors from engine
        logger.error(f"Validation error: {str(e)}")
        return jsonify({
            "error": str(e),
            "status": "validation_failed"
        }), 400

    except Exception as e:
        # Unexpected errors
        logger.error(f"Processing error: {str(e)}", exc_info=True)
        return jsonify({
            "error": "An unexpected error occurred during processing",
            "status": "failed"
        }), 500


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    app.run(host="0.0.0.0", port=port, debug=False)
