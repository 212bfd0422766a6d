"""modplan: module-hours planning over a school workbook, served over MCP."""
