from docproc.database.enums import ProcessingType

DEFAULT_INSTRUCTIONS: dict[ProcessingType, str] = {
    ProcessingType.TENDER_EXTRACTION: "Extract key information from the following tender document:",
    ProcessingType.BID_ANALYSIS: "Analyze the following bid document and provide insights:",
    ProcessingType.COMPLIANCE_CHECK: "Check the following document for compliance issues:",
    ProcessingType.DOCUMENT_SUMMARY: "Provide a comprehensive summary of the following document:",
    ProcessingType.DATA_EXTRACTION: "Extract structured data from the following document:",
    ProcessingType.CLASSIFICATION: "Classify the following document:",
    ProcessingType.TRANSLATION: "Translate the following document:",
    ProcessingType.COMPARISON: "Compare and analyze the following documents:",
    ProcessingType.VALIDATION: "Validate the information in the following document:",
}


def default_prompt(processing_type: ProcessingType, document: str) -> str:
    """Built-in prompt used when a job has neither a template nor custom instructions.

    CUSTOM jobs send the document as-is.
    """
    instruction = DEFAULT_INSTRUCTIONS.get(processing_type)
    if instruction is None:
        return document
    return f"{instruction}\n\n{document}"
