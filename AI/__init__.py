"""
AI Module - Dispatch, function execution and synthesis

Usage:
    from AI import OpenAIClient, Dispatcher, FunctionExecutor, ResponseSynthesizer

    client = OpenAIClient()
    dispatcher = Dispatcher(client)
    decision = await dispatcher.dispatch(context_messages, content)
"""

from AI.base_client import BaseAIClient, CompletionResult, TokenUsage
from AI.dispatcher import DispatchDecision, Dispatcher, FunctionCall, PlainMessage
from AI.exchange import Exchange
from AI.image_intent import ImageIntentDetector
from AI.openai_client import OpenAIClient
from AI.synthesizer import ResponseSynthesizer, SynthesizedResponse
from AI.tool_executor import ExecutionOutcome, ExecutionStatus, FunctionExecutor, FunctionResult
from AI.tools import FunctionName

# Export commonly used items
__all__ = [
    'BaseAIClient',
    'CompletionResult',
    'DispatchDecision',
    'Dispatcher',
    'Exchange',
    'ExecutionOutcome',
    'ExecutionStatus',
    'FunctionCall',
    'FunctionExecutor',
    'FunctionName',
    'FunctionResult',
    'ImageIntentDetector',
    'OpenAIClient',
    'PlainMessage',
    'ResponseSynthesizer',
    'SynthesizedResponse',
    'TokenUsage',
]
