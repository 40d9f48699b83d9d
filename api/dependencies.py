"""
API依赖项 - 从应用状态获取已装配的服务
"""
from fastapi import Depends, Request

from application.services.invoice_service import InvoiceService
from application.services.payment_service import PaymentService
from application.services.verification_processor import VerificationProcessor
from infrastructure.bootstrap import PaymentPipeline


def get_pipeline(request: Request) -> PaymentPipeline:
    """流水线在应用生命周期启动时装配并挂载到 app.state"""
    return request.app.state.pipeline


def get_verification_processor(pipeline: PaymentPipeline = Depends(get_pipeline)) -> VerificationProcessor:
    return pipeline.processor


def get_payment_service(pipeline: PaymentPipeline = Depends(get_pipeline)) -> PaymentService:
    return pipeline.payment_service


def get_invoice_service(pipeline: PaymentPipeline = Depends(get_pipeline)) -> InvoiceService:
    return pipeline.invoice_service
